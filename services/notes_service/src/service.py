from typing import Any, Callable, Optional, TypeVar

from anyio import to_thread
from opentelemetry import trace

from .access import resolve_client
from .config import settings
from .context import assemble_context
from .documents import DocumentStore
from .exceptions import NotesError, StorageError
from .generation import GenerationDriver
from .ingest import ingest_transcript
from .logging import hash_preview, jlog
from .prompt import build_prompt
from .schemas import SoapNoteResponse, Transcript
from .storage import Datastore

tracer = trace.get_tracer("notes.soap")

T = TypeVar("T")

SOAP_DOCUMENT_KIND = "text"


async def _run_storage(operation: str, fn: Callable[..., T], *args: Any, **context: Any) -> T:
    """Run a sync storage call off the event loop; anything unclassified becomes StorageError."""
    try:
        return await to_thread.run_sync(fn, *args)
    except NotesError:
        raise
    except Exception as e:
        jlog(event="storage_error", severity="ERROR", operation=operation, error_type=type(e).__name__, **context)
        raise StorageError(operation) from e


def soap_note_title(client_name: str) -> str:
    return f"SOAP Note - {client_name}"


async def generate_soap_note(
    client_id: str,
    user_id: str,
    datastore: Datastore,
    driver: GenerationDriver,
    window: Optional[int] = None,
    char_budget: Optional[int] = None,
    display_timezone: Optional[str] = None,
    timeout_s: Optional[float] = None,
) -> SoapNoteResponse:
    """
    Resolve client -> assemble context -> build prompt -> generate -> persist.

    Each step starts only after the previous one succeeded, so a failed or
    empty generation never leaves a document behind. Every run mints a new
    document id; re-running after a failure is always safe.
    """
    window = window or settings.transcript_window
    char_budget = char_budget or settings.transcript_char_budget
    display_timezone = display_timezone or settings.display_timezone

    with tracer.start_as_current_span("SoapNoteGeneration") as span:
        span.set_attribute("operation", "soap_note_generation")
        span.set_attribute("client_id", client_id)
        span.set_attribute("model_name", driver.model_name or "")

        client = await _run_storage("resolve_client", resolve_client, datastore, client_id, user_id,
                                    client_id=client_id)

        transcripts = await _run_storage(
            "get_transcripts_by_client_id", datastore.get_transcripts_by_client_id, client.id, window,
            client_id=client_id,
        )
        context = assemble_context(client, transcripts, window, char_budget, display_timezone)
        span.set_attribute("transcript_count", context.transcript_count)
        span.set_attribute("truncated", context.truncated)
        jlog(
            event="context_assembled",
            client_id=client_id,
            transcript_count=context.transcript_count,
            truncated=context.truncated,
            transcripts=hash_preview(context.transcripts),
        )

        prompt = build_prompt(context, client.name)
        text = await driver.generate(prompt.instructions, prompt.content, timeout_s=timeout_s)

        store = DocumentStore(datastore)
        title = soap_note_title(client.name)
        snapshot = await _run_storage(
            "create_document", store.create_document, title, SOAP_DOCUMENT_KIND, text, user_id,
            client_id=client_id,
        )
        span.set_attribute("document_id", snapshot.id)

    jlog(event="soap_ok", client_id=client_id, user_id=user_id, document_id=snapshot.id,
         content=hash_preview(snapshot.content))
    return SoapNoteResponse(document_id=snapshot.id, title=snapshot.title, initial_content=snapshot.content)


async def add_transcript(
    client_id: str,
    session_datetime: Any,
    content: Any,
    user_id: str,
    datastore: Datastore,
) -> Transcript:
    return await _run_storage(
        "insert_transcript", ingest_transcript, datastore, client_id, session_datetime, content, user_id,
        client_id=client_id,
    )
