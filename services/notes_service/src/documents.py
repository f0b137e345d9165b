import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .exceptions import DocumentNotFoundError, ValidationError
from .logging import hash_preview, jlog
from .schemas import DocumentSnapshot, utcnow
from .storage import Datastore


class DocumentStore:
    """
    Append-only generated documents.

    Each version is a separate snapshot sharing the document id; the current
    version is the one with the greatest created_at. Snapshots are only ever
    inserted, so the version history doubles as the audit trail.
    """

    def __init__(self, datastore: Datastore, clock: Callable[[], datetime] = utcnow):
        self._datastore = datastore
        self._clock = clock

    def create_document(self, title: str, kind: str, content: str, owner_id: str) -> DocumentSnapshot:
        if not content:
            raise ValidationError({"content": ["Document content cannot be empty."]})
        snapshot = DocumentSnapshot(
            id=str(uuid.uuid4()),
            title=title,
            kind=kind,
            content=content,
            user_id=owner_id,
            created_at=self._clock(),
        )
        self._datastore.insert_document_snapshot(snapshot)
        jlog(event="document_created", document_id=snapshot.id, kind=kind, user_id=owner_id,
             content=hash_preview(content))
        return snapshot

    def get_current_version(self, document_id: str, owner_id: Optional[str] = None) -> DocumentSnapshot:
        snapshot = self._datastore.select_latest_snapshot(document_id)
        if snapshot is None or (owner_id is not None and snapshot.user_id != owner_id):
            raise DocumentNotFoundError()
        return snapshot

    def append_version(
        self,
        document_id: str,
        content: str,
        owner_id: str,
        title: Optional[str] = None,
    ) -> DocumentSnapshot:
        if not content:
            raise ValidationError({"content": ["Document content cannot be empty."]})
        current = self.get_current_version(document_id, owner_id)

        created_at = self._clock()
        if created_at <= current.created_at:
            # Keep created_at strictly increasing so "current" stays unambiguous
            created_at = current.created_at + timedelta(microseconds=1)

        snapshot = DocumentSnapshot(
            id=document_id,
            title=title or current.title,
            kind=current.kind,
            content=content,
            user_id=owner_id,
            created_at=created_at,
        )
        self._datastore.insert_document_snapshot(snapshot)
        jlog(event="document_version_appended", document_id=document_id, user_id=owner_id,
             created_at=created_at.isoformat(), content=hash_preview(content))
        return snapshot

    def list_versions(self, document_id: str, owner_id: Optional[str] = None) -> List[DocumentSnapshot]:
        versions = self._datastore.select_snapshots(document_id)
        if not versions or (owner_id is not None and versions[-1].user_id != owner_id):
            raise DocumentNotFoundError()
        return versions

    def get_version(self, document_id: str, created_at: datetime, owner_id: Optional[str] = None) -> DocumentSnapshot:
        snapshot = self._datastore.select_snapshot(document_id, created_at)
        if snapshot is None or (owner_id is not None and snapshot.user_id != owner_id):
            raise DocumentNotFoundError()
        return snapshot
