from datetime import datetime, timedelta, timezone

import pytest

from services.notes_service.src.documents import DocumentStore
from services.notes_service.src.exceptions import DocumentNotFoundError, StorageError, ValidationError

OWNER_ID = "user-owner"
OTHER_USER_ID = "user-other"
T0 = datetime(2025, 3, 2, 9, 0, tzinfo=timezone.utc)


class StepClock:
    """Clock double: returns the queued instants in order, then repeats the last one."""

    def __init__(self, *instants):
        self._instants = list(instants)

    def __call__(self):
        if len(self._instants) > 1:
            return self._instants.pop(0)
        return self._instants[0]


def test_create_then_read_current(datastore):
    store = DocumentStore(datastore, clock=StepClock(T0))

    created = store.create_document("SOAP Note - Jane Doe", "text", "## Subjective\nok", OWNER_ID)
    current = store.get_current_version(created.id, OWNER_ID)

    assert current == created
    assert current.created_at == T0
    assert current.kind == "text"

def test_each_create_mints_a_new_document(datastore):
    store = DocumentStore(datastore)
    first = store.create_document("t", "text", "one", OWNER_ID)
    second = store.create_document("t", "text", "one", OWNER_ID)
    assert first.id != second.id

def test_appended_versions_are_all_retrievable(datastore):
    instants = [T0 + timedelta(minutes=m) for m in range(4)]
    store = DocumentStore(datastore, clock=StepClock(*instants))

    doc = store.create_document("SOAP Note - Jane Doe", "text", "v0", OWNER_ID)
    for n in range(1, 4):
        store.append_version(doc.id, f"v{n}", OWNER_ID)

    current = store.get_current_version(doc.id, OWNER_ID)
    versions = store.list_versions(doc.id, OWNER_ID)

    assert current.content == "v3"
    assert current.created_at == max(v.created_at for v in versions)
    assert [v.content for v in versions] == ["v0", "v1", "v2", "v3"]
    for version, instant in zip(versions, instants):
        assert store.get_version(doc.id, instant, OWNER_ID).content == version.content

def test_append_keeps_title_and_kind_unless_renamed(datastore):
    store = DocumentStore(datastore, clock=StepClock(T0, T0 + timedelta(seconds=1), T0 + timedelta(seconds=2)))
    doc = store.create_document("SOAP Note - Jane Doe", "text", "v0", OWNER_ID)

    kept = store.append_version(doc.id, "v1", OWNER_ID)
    renamed = store.append_version(doc.id, "v2", OWNER_ID, title="Reviewed SOAP Note")

    assert kept.title == "SOAP Note - Jane Doe"
    assert renamed.title == "Reviewed SOAP Note"
    assert renamed.kind == "text"
    assert store.get_version(doc.id, kept.created_at).content == "v1"

def test_clock_tie_still_yields_strictly_increasing_versions(datastore):
    store = DocumentStore(datastore, clock=StepClock(T0))

    doc = store.create_document("t", "text", "v0", OWNER_ID)
    second = store.append_version(doc.id, "v1", OWNER_ID)
    third = store.append_version(doc.id, "v2", OWNER_ID)

    assert doc.created_at < second.created_at < third.created_at
    assert store.get_current_version(doc.id).content == "v2"
    assert len(store.list_versions(doc.id)) == 3

def test_earlier_versions_are_never_modified(datastore):
    store = DocumentStore(datastore, clock=StepClock(T0, T0 + timedelta(seconds=1)))
    doc = store.create_document("t", "text", "original", OWNER_ID)

    store.append_version(doc.id, "edited", OWNER_ID)

    assert store.get_version(doc.id, T0).content == "original"

def test_unknown_document_is_not_found(datastore):
    store = DocumentStore(datastore)
    with pytest.raises(DocumentNotFoundError):
        store.get_current_version("missing")
    with pytest.raises(DocumentNotFoundError):
        store.list_versions("missing")
    with pytest.raises(DocumentNotFoundError):
        store.get_version("missing", T0)
    with pytest.raises(DocumentNotFoundError):
        store.append_version("missing", "text", OWNER_ID)

def test_documents_are_scoped_to_their_owner(datastore):
    store = DocumentStore(datastore, clock=StepClock(T0))
    doc = store.create_document("t", "text", "private", OWNER_ID)

    with pytest.raises(DocumentNotFoundError):
        store.get_current_version(doc.id, OTHER_USER_ID)
    with pytest.raises(DocumentNotFoundError):
        store.append_version(doc.id, "hijack", OTHER_USER_ID)
    with pytest.raises(DocumentNotFoundError):
        store.get_version(doc.id, T0, OTHER_USER_ID)

    assert len(store.list_versions(doc.id, OWNER_ID)) == 1

def test_empty_content_is_rejected(datastore):
    store = DocumentStore(datastore)
    with pytest.raises(ValidationError):
        store.create_document("t", "text", "", OWNER_ID)
    assert datastore.snapshots == {}

def test_storage_failure_propagates(datastore):
    datastore.fail_on = "insert_document_snapshot"
    with pytest.raises(StorageError):
        DocumentStore(datastore).create_document("t", "text", "content", OWNER_ID)
