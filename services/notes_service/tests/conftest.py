import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import anyio
import pytest

from services.notes_service.src.exceptions import DuplicateSessionError, StorageError
from services.notes_service.src.schemas import Client, DocumentSnapshot, Transcript
from services.notes_service.src.storage import timestamp_key

OWNER_ID = "user-owner"
OTHER_USER_ID = "user-other"
BASE_SESSION = datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)


class InMemoryDatastore:
    """Datastore double with the same uniqueness and ordering rules as Firestore."""

    def __init__(self):
        self.clients: Dict[str, Client] = {}
        self.transcripts: Dict[Tuple[str, str], Transcript] = {}
        self.snapshots: Dict[Tuple[str, str], DocumentSnapshot] = {}
        self.fail_on: Optional[str] = None

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise StorageError(operation)

    def add_client(self, client: Client) -> Client:
        self.clients[client.id] = client
        return client

    def get_client_by_id(self, client_id: str, owner_id: str) -> Optional[Client]:
        self._maybe_fail("get_client_by_id")
        client = self.clients.get(client_id)
        if client is None or client.user_id != owner_id:
            return None
        return client

    def get_transcripts_by_client_id(self, client_id: str, limit: Optional[int] = None) -> List[Transcript]:
        self._maybe_fail("get_transcripts_by_client_id")
        rows = sorted(
            (t for (cid, _), t in self.transcripts.items() if cid == client_id),
            key=lambda t: t.session_datetime,
            reverse=True,
        )
        return rows[:limit] if limit is not None else rows

    def insert_transcript(self, transcript: Transcript) -> Transcript:
        self._maybe_fail("insert_transcript")
        key = (transcript.client_id, timestamp_key(transcript.session_datetime))
        if key in self.transcripts:
            raise DuplicateSessionError()
        self.transcripts[key] = transcript
        return transcript

    def insert_document_snapshot(self, snapshot: DocumentSnapshot) -> DocumentSnapshot:
        self._maybe_fail("insert_document_snapshot")
        key = (snapshot.id, timestamp_key(snapshot.created_at))
        if key in self.snapshots:
            raise StorageError("insert_document_snapshot")
        self.snapshots[key] = snapshot
        return snapshot

    def select_latest_snapshot(self, document_id: str) -> Optional[DocumentSnapshot]:
        versions = self.select_snapshots(document_id)
        return versions[-1] if versions else None

    def select_snapshots(self, document_id: str) -> List[DocumentSnapshot]:
        return sorted(
            (s for (doc_id, _), s in self.snapshots.items() if doc_id == document_id),
            key=lambda s: s.created_at,
        )

    def select_snapshot(self, document_id: str, created_at: datetime) -> Optional[DocumentSnapshot]:
        return self.snapshots.get((document_id, timestamp_key(created_at)))


def make_transcript(client_id: str, hours_after: int = 0, content: str = "Client reports feeling calmer.") -> Transcript:
    return Transcript(
        client_id=client_id,
        session_datetime=BASE_SESSION + timedelta(hours=hours_after),
        content=content,
    )


def make_source(*fragments: str, error: Optional[Exception] = None, fail_after: Optional[int] = None, delay: float = 0.0):
    """Fragment source double: yields `fragments`, optionally raising `error` after `fail_after` of them."""
    calls: List[Tuple[str, str]] = []

    async def source(instructions: str, content: str):
        calls.append((instructions, content))
        for index, fragment in enumerate(fragments):
            if error is not None and fail_after is not None and index == fail_after:
                raise error
            if delay:
                await anyio.sleep(delay)
            yield fragment
        if error is not None and (fail_after is None or fail_after >= len(fragments)):
            raise error

    source.calls = calls
    return source


@pytest.fixture
def anyio_backend():
    return "asyncio"

@pytest.fixture
def datastore() -> InMemoryDatastore:
    return InMemoryDatastore()

@pytest.fixture
def jane() -> Client:
    return Client(
        id=str(uuid.uuid4()),
        user_id=OWNER_ID,
        name="Jane Doe",
        date_of_birth=date(1985, 4, 12),
        gender="Female",
        insurance_company="Blue Cross",
        chief_complaint="Persistent worry and poor sleep",
        diagnosis=["F41.1 Generalized anxiety disorder", "G47.00 Insomnia"],
        medications="Sertraline 50mg daily",
        treatment_goals="Reduce worry; improve sleep onset",
    )

@pytest.fixture
def store_with_jane(datastore: InMemoryDatastore, jane: Client) -> InMemoryDatastore:
    datastore.add_client(jane)
    return datastore

@pytest.fixture
def transcript_factory():
    return make_transcript

@pytest.fixture
def source_factory():
    return make_source
