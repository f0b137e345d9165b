import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from .src.config import settings
from .src.events import EventPublisher
from .src.generation import GenerationDriver, OpenAIStream
from .src.routers import documents, soap_note, transcript
from .src.routers.deps import request_validation_handler
from .src.storage import FirestoreDatastore
from .otel import init_tracing

os.environ.setdefault("SERVICE_NAME", settings.service_name)

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Firestore client is sync; storage calls are offloaded to worker threads
    app.state.datastore = FirestoreDatastore.from_settings()

    source = OpenAIStream.from_settings()
    app.state.generation_driver = GenerationDriver(source, timeout_s=settings.soap_timeout_s)
    app.state.event_publisher = EventPublisher.from_settings()

    try:
        yield
    finally:
        await source.aclose()

app = FastAPI(title="Clinical Notes API", version="1.0.0", lifespan=lifespan)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.include_router(soap_note.router, prefix="/api/v1")
app.include_router(transcript.router, prefix="/api/v1")
app.include_router(documents.router, prefix="/api/v1")

tracer = init_tracing(app, service_name=settings.service_name, service_version="v1")

@app.get("/health")
def health():
    return {"status": "ok", "service": settings.service_name}
