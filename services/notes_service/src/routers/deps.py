from typing import Dict, List, Optional

from fastapi import Header, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..documents import DocumentStore
from ..events import EventPublisher
from ..exceptions import DocumentNotFoundError, GenerationError, NotesError, ValidationError
from ..generation import GenerationDriver
from ..logging import jlog, set_correlation_id
from ..storage import Datastore

_STATUS_BY_KIND = {
    "AuthorizationError": status.HTTP_404_NOT_FOUND,
    DocumentNotFoundError.kind: status.HTTP_404_NOT_FOUND,
    "ValidationError": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "DuplicateSessionError": status.HTTP_409_CONFLICT,
    "StorageError": status.HTTP_503_SERVICE_UNAVAILABLE,
}

_STATUS_BY_GENERATION_REASON = {
    GenerationError.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    GenerationError.UPSTREAM_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
    GenerationError.EMPTY_OUTPUT: status.HTTP_502_BAD_GATEWAY,
}


def to_http_error(e: NotesError, event: str, **fields) -> HTTPException:
    if isinstance(e, GenerationError):
        status_code = _STATUS_BY_GENERATION_REASON.get(e.reason, status.HTTP_502_BAD_GATEWAY)
    else:
        status_code = _STATUS_BY_KIND.get(e.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    jlog(event=event, kind=e.kind, retryable=e.retryable, status_code=status_code, error=e.message, **fields)
    return HTTPException(status_code=status_code, detail=e.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Body/path/query errors from FastAPI itself, reshaped into the same {kind, message, errors} detail
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ())]
        field = ".".join(loc[1:]) or (loc[0] if loc else "general")
        errors.setdefault(field, []).append(err.get("msg", "Invalid value."))
    e = ValidationError(errors)
    jlog(event="request_invalid", path=request.url.path, fields=sorted(errors), status_code=422)
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": e.to_dict()})


async def current_user_id(
    x_user_id: Optional[str] = Header(default=None),
    x_correlation_id: Optional[str] = Header(default=None),
) -> str:
    # Authentication happens upstream; the gateway forwards the verified user id
    set_correlation_id(x_correlation_id)
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"kind": "AuthorizationError", "message": "Authentication required."},
        )
    return x_user_id


def get_datastore(request: Request) -> Datastore:
    return request.app.state.datastore

def get_generation_driver(request: Request) -> GenerationDriver:
    return request.app.state.generation_driver

def get_event_publisher(request: Request) -> EventPublisher:
    return request.app.state.event_publisher

def get_document_store(request: Request) -> DocumentStore:
    return DocumentStore(request.app.state.datastore)
