import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

from google.api_core import exceptions as gax_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from .config import settings
from .exceptions import DuplicateSessionError, StorageError
from .logging import jlog
from .schemas import Client, DocumentSnapshot, Transcript

retry_logger = logging.getLogger("tenacity")

T = TypeVar("T")

# Transient Firestore failures worth a short retry on reads; others bubble
RETRYABLE_FIRESTORE_EXC = (
    gax_exceptions.ServiceUnavailable,
    gax_exceptions.DeadlineExceeded,
    gax_exceptions.InternalServerError,
    gax_exceptions.Aborted,
    gax_exceptions.ResourceExhausted,
)


class Datastore(Protocol):
    """Ownership-scoped data access used by the note pipeline."""

    def get_client_by_id(self, client_id: str, owner_id: str) -> Optional[Client]: ...

    def get_transcripts_by_client_id(self, client_id: str, limit: Optional[int] = None) -> List[Transcript]: ...

    def insert_transcript(self, transcript: Transcript) -> Transcript: ...

    def insert_document_snapshot(self, snapshot: DocumentSnapshot) -> DocumentSnapshot: ...

    def select_latest_snapshot(self, document_id: str) -> Optional[DocumentSnapshot]: ...

    def select_snapshots(self, document_id: str) -> List[DocumentSnapshot]: ...

    def select_snapshot(self, document_id: str, created_at: datetime) -> Optional[DocumentSnapshot]: ...


def timestamp_key(dt: datetime) -> str:
    """Canonical UTC key for a timestamp, microsecond precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")

def snapshot_doc_id(document_id: str, created_at: datetime) -> str:
    return f"{document_id}@{timestamp_key(created_at)}"


class FirestoreDatastore:
    """
    Firestore layout:
      clients/{client_id}                                  client profile, `user_id` owner field
      clients/{client_id}/transcripts/{session_key}         one doc per session timestamp
      documents/{document_id}@{created_at}                  one doc per snapshot
    The transcript doc id makes (client_id, session_datetime) unique at the storage engine.
    """

    def __init__(self, db: firestore.Client):
        self._db = db
        self._clients = db.collection(settings.clients_collection)
        self._documents = db.collection(settings.documents_collection)

    @classmethod
    def from_settings(cls) -> "FirestoreDatastore":
        kwargs: Dict[str, Any] = {}
        if settings.project_id:
            kwargs["project"] = settings.project_id
        if settings.firestore_database:
            kwargs["database"] = settings.firestore_database
        return cls(firestore.Client(**kwargs))

    def _transcripts(self, client_id: str):
        return self._clients.document(client_id).collection(settings.transcripts_collection)

    def _read(self, operation: str, fn: Callable[[], T], **context: Any) -> T:
        retrying = Retrying(
            retry=retry_if_exception_type(RETRYABLE_FIRESTORE_EXC),
            wait=wait_random_exponential(
                multiplier=max(0.01, settings.storage_backoff_base_ms / 1000.0),
                max=max(settings.storage_backoff_cap_ms / 1000.0, settings.storage_backoff_base_ms / 1000.0),
            ),
            stop=stop_after_attempt(max(1, settings.storage_max_retries + 1)),
            reraise=True,
            before_sleep=before_sleep_log(retry_logger, logging.WARNING),
        )
        try:
            return retrying(fn)
        except gax_exceptions.GoogleAPIError as e:
            jlog(event="storage_error", severity="ERROR", operation=operation,
                 error_type=type(e).__name__, error=str(e), **context)
            raise StorageError(operation) from e

    # Clients

    def get_client_by_id(self, client_id: str, owner_id: str) -> Optional[Client]:
        def _get() -> Optional[Client]:
            snap = self._clients.document(client_id).get()
            if not snap.exists:
                return None
            data = snap.to_dict() or {}
            # Both predicates must match; a foreign owner reads as absent
            if data.get("user_id") != owner_id:
                return None
            data.pop("id", None)
            return Client(id=snap.id, **data)

        return self._read("get_client_by_id", _get, client_id=client_id)

    # Transcripts

    def get_transcripts_by_client_id(self, client_id: str, limit: Optional[int] = None) -> List[Transcript]:
        def _list() -> List[Transcript]:
            query = self._transcripts(client_id).order_by(
                "session_datetime", direction=firestore.Query.DESCENDING
            )
            if limit is not None:
                query = query.limit(limit)
            return [Transcript(**doc.to_dict()) for doc in query.stream()]

        return self._read("get_transcripts_by_client_id", _list, client_id=client_id)

    def insert_transcript(self, transcript: Transcript) -> Transcript:
        ref = self._transcripts(transcript.client_id).document(timestamp_key(transcript.session_datetime))
        try:
            ref.create(transcript.model_dump())
        except gax_exceptions.AlreadyExists as e:
            raise DuplicateSessionError() from e
        except gax_exceptions.GoogleAPIError as e:
            jlog(event="storage_error", severity="ERROR", operation="insert_transcript",
                 client_id=transcript.client_id, error_type=type(e).__name__, error=str(e))
            raise StorageError("insert_transcript") from e
        return transcript

    # Documents

    def insert_document_snapshot(self, snapshot: DocumentSnapshot) -> DocumentSnapshot:
        ref = self._documents.document(snapshot_doc_id(snapshot.id, snapshot.created_at))
        data = snapshot.model_dump()
        data["document_id"] = data.pop("id")
        try:
            # create(), never set(): a written snapshot is immutable
            ref.create(data)
        except gax_exceptions.GoogleAPIError as e:
            jlog(event="storage_error", severity="ERROR", operation="insert_document_snapshot",
                 document_id=snapshot.id, error_type=type(e).__name__, error=str(e))
            raise StorageError("insert_document_snapshot") from e
        return snapshot

    def _snapshot_query(self, document_id: str, direction: str):
        return self._documents.where(filter=FieldFilter("document_id", "==", document_id)).order_by(
            "created_at", direction=direction
        )

    def select_latest_snapshot(self, document_id: str) -> Optional[DocumentSnapshot]:
        def _latest() -> Optional[DocumentSnapshot]:
            for doc in self._snapshot_query(document_id, firestore.Query.DESCENDING).limit(1).stream():
                return _to_snapshot(doc.to_dict())
            return None

        return self._read("select_latest_snapshot", _latest, document_id=document_id)

    def select_snapshots(self, document_id: str) -> List[DocumentSnapshot]:
        def _all() -> List[DocumentSnapshot]:
            return [
                _to_snapshot(doc.to_dict())
                for doc in self._snapshot_query(document_id, firestore.Query.ASCENDING).stream()
            ]

        return self._read("select_snapshots", _all, document_id=document_id)

    def select_snapshot(self, document_id: str, created_at: datetime) -> Optional[DocumentSnapshot]:
        def _one() -> Optional[DocumentSnapshot]:
            snap = self._documents.document(snapshot_doc_id(document_id, created_at)).get()
            return _to_snapshot(snap.to_dict()) if snap.exists else None

        return self._read("select_snapshot", _one, document_id=document_id)


def _to_snapshot(data: Optional[Dict[str, Any]]) -> DocumentSnapshot:
    data = dict(data or {})
    data["id"] = data.pop("document_id")
    return DocumentSnapshot(**data)
