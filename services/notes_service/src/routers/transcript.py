from fastapi import APIRouter, BackgroundTasks, Depends, status

from ..config import settings
from ..events import EventPublisher, transcript_ingested_event
from ..exceptions import NotesError
from ..schemas import ErrorResponse, TranscriptCreateRequest, TranscriptResponse
from ..service import add_transcript
from ..storage import Datastore
from .deps import current_user_id, get_datastore, get_event_publisher, to_http_error

router = APIRouter()

@router.post(
    "/clients/{client_id}/transcripts",
    summary="Store Transcript",
    description="Store a session transcript for a client. One transcript per client per session date and time.",
    response_model=TranscriptResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def upload_transcript(
    client_id: str,
    payload: TranscriptCreateRequest,
    background: BackgroundTasks,
    user_id: str = Depends(current_user_id),
    datastore: Datastore = Depends(get_datastore),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> TranscriptResponse:
    try:
        transcript = await add_transcript(client_id, payload.session_datetime, payload.content, user_id, datastore)
    except NotesError as e:
        raise to_http_error(e, "transcript_failed", client_id=client_id, user_id=user_id)

    if publisher.enabled:
        background.add_task(
            publisher.publish_quietly,
            settings.transcript_ingested_topic,
            transcript_ingested_event(transcript),
            transcript.client_id,
        )
    return TranscriptResponse(
        id=transcript.id,
        client_id=transcript.client_id,
        session_datetime=transcript.session_datetime,
        content=transcript.content,
        created_at=transcript.created_at,
    )
