from fastapi import APIRouter, BackgroundTasks, Depends, status

from ..config import settings
from ..events import EventPublisher, soap_note_generated_event
from ..exceptions import NotesError
from ..generation import GenerationDriver
from ..schemas import ErrorResponse, SoapNoteRequest, SoapNoteResponse
from ..service import generate_soap_note
from ..storage import Datastore
from .deps import current_user_id, get_datastore, get_event_publisher, get_generation_driver, to_http_error

router = APIRouter()

@router.post(
    "/soap_note",
    response_model=SoapNoteResponse,
    summary="Generate a SOAP note for a client",
    description="Synthesizes a SOAP note from the client's demographics and most recent transcripts and stores it as a new document.",
    status_code=status.HTTP_200_OK,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse},
               502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
)
async def soap_note(
    payload: SoapNoteRequest,
    background: BackgroundTasks,
    user_id: str = Depends(current_user_id),
    datastore: Datastore = Depends(get_datastore),
    driver: GenerationDriver = Depends(get_generation_driver),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> SoapNoteResponse:
    try:
        resp = await generate_soap_note(payload.client_id, user_id, datastore, driver)
    except NotesError as e:
        raise to_http_error(e, "soap_failed", client_id=payload.client_id, user_id=user_id)

    if publisher.enabled:
        background.add_task(
            publisher.publish_quietly,
            settings.soap_note_generated_topic,
            soap_note_generated_event(resp.document_id, payload.client_id, user_id),
            resp.document_id,
        )
    return resp
