from anyio import to_thread
from fastapi import APIRouter, Depends, status

from ..documents import DocumentStore
from ..exceptions import NotesError
from ..schemas import DocumentSnapshot, DocumentVersionRequest, DocumentVersionsResponse, ErrorResponse
from .deps import current_user_id, get_document_store, to_http_error

router = APIRouter()

@router.get(
    "/documents/{document_id}",
    summary="Current version of a document",
    response_model=DocumentSnapshot,
    responses={404: {"model": ErrorResponse}},
)
async def get_document(
    document_id: str,
    user_id: str = Depends(current_user_id),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentSnapshot:
    try:
        return await to_thread.run_sync(store.get_current_version, document_id, user_id)
    except NotesError as e:
        raise to_http_error(e, "document_read_failed", document_id=document_id, user_id=user_id)

@router.get(
    "/documents/{document_id}/versions",
    summary="Every version of a document, oldest first",
    response_model=DocumentVersionsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_document_versions(
    document_id: str,
    user_id: str = Depends(current_user_id),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentVersionsResponse:
    try:
        versions = await to_thread.run_sync(store.list_versions, document_id, user_id)
    except NotesError as e:
        raise to_http_error(e, "document_read_failed", document_id=document_id, user_id=user_id)
    return DocumentVersionsResponse(document_id=document_id, versions=versions)

@router.post(
    "/documents/{document_id}/versions",
    summary="Append a new version to a document",
    response_model=DocumentSnapshot,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def append_document_version(
    document_id: str,
    payload: DocumentVersionRequest,
    user_id: str = Depends(current_user_id),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentSnapshot:
    try:
        return await to_thread.run_sync(store.append_version, document_id, payload.content, user_id, payload.title)
    except NotesError as e:
        raise to_http_error(e, "document_append_failed", document_id=document_id, user_id=user_id)
