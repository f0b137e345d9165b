from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from .access import resolve_client
from .exceptions import DuplicateSessionError, ValidationError
from .logging import hash_preview, jlog
from .schemas import Transcript, TranscriptCreate
from .storage import Datastore

_FIELD_MESSAGES = {
    "client_id": "Invalid Client ID format.",
    "content": "Transcript content cannot be empty.",
}


def field_errors(exc: PydanticValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err.get("loc") else "general"
        if field == "session_datetime":
            if err["type"] == "missing" or err.get("input") in (None, ""):
                msg = "Session date and time are required."
            else:
                msg = "Invalid date and time format. Please ensure you select both date and time."
        else:
            msg = _FIELD_MESSAGES.get(field, err["msg"])
        errors.setdefault(field, [])
        if msg not in errors[field]:
            errors[field].append(msg)
    return errors


def ingest_transcript(
    datastore: Datastore,
    client_id: str,
    session_datetime: Any,
    content: Any,
    user_id: str,
) -> Transcript:
    """
    Validate, authorize, then insert one transcript.

    Structural checks run before the ownership lookup and before any write.
    Uniqueness of (client_id, session_datetime) is left to the storage engine;
    a violation arrives as DuplicateSessionError.
    """
    try:
        data = TranscriptCreate(client_id=client_id, session_datetime=session_datetime, content=content)
    except PydanticValidationError as e:
        errors = field_errors(e)
        jlog(event="transcript_invalid", client_id=client_id, fields=sorted(errors))
        raise ValidationError(errors) from e

    client = resolve_client(datastore, client_id, user_id)

    transcript = Transcript(
        client_id=client.id,
        session_datetime=data.session_datetime,
        content=data.content,
    )
    try:
        stored = datastore.insert_transcript(transcript)
    except DuplicateSessionError:
        jlog(event="transcript_duplicate", severity="WARNING", client_id=client.id,
             session_datetime=data.session_datetime.isoformat())
        raise

    jlog(
        event="transcript_ingested",
        transcript_id=stored.id,
        client_id=client.id,
        session_datetime=stored.session_datetime.isoformat(),
        content=hash_preview(stored.content),
    )
    return stored
