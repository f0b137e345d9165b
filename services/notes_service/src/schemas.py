from datetime import date, datetime, timezone
from typing import Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(v: datetime) -> datetime:
    # Naive timestamps are taken as UTC
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)

# Tenant-owned demographic profile. Created and edited outside this service.
class Client(BaseModel):
    id: str
    user_id: str
    name: str
    date_of_birth: Optional[date] = None
    gender: str = "Prefer not to say"
    insurance_company: str = ""
    chief_complaint: str = ""
    diagnosis: List[str] = []
    medications: str = ""
    treatment_goals: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _date_only(cls, v):
        # Firestore has no date type; dates come back as midnight timestamps
        if isinstance(v, datetime):
            return v.date()
        return v

    @field_validator("diagnosis", mode="before")
    @classmethod
    def _diagnosis_list(cls, v):
        return v or []

# One clinical session. (client_id, session_datetime) is unique.
class Transcript(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    client_id: str
    session_datetime: datetime
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("session_datetime")
    @classmethod
    def _session_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

# One immutable revision of a generated document; versions share `id`.
class DocumentSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    kind: str
    content: str
    user_id: str
    created_at: datetime


class TranscriptCreate(BaseModel):
    """Structural validation for transcript ingestion, run before any write."""

    client_id: uuid.UUID
    session_datetime: datetime
    content: str = Field(..., min_length=1)

    @field_validator("client_id", mode="before")
    @classmethod
    def _client_id_format(cls, v):
        if isinstance(v, str):
            try:
                return uuid.UUID(v)
            except ValueError:
                raise ValueError("Invalid Client ID format.")
        return v

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Transcript content cannot be empty.")
        return v

    @field_validator("session_datetime")
    @classmethod
    def _aware_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class ContextBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    demographics: str
    transcripts: str
    transcript_count: int
    truncated: bool = False
    original_length: int = 0

    def render(self) -> str:
        return f"CLIENT DEMOGRAPHICS:\n{self.demographics}\n\nSESSION TRANSCRIPTS:\n{self.transcripts}"


class SoapPrompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    instructions: str
    content: str

# API request/response schemas

class SoapNoteRequest(BaseModel):
    client_id: str = Field(..., description="Identifier of the client the note is generated for.")

class SoapNoteResponse(BaseModel):
    document_id: str = Field(..., description="Identifier shared by every version of the generated document.")
    title: str = Field(..., description="Document title, e.g. 'SOAP Note - Jane Doe'.")
    initial_content: str = Field(..., description="Markdown SOAP note as first persisted.")

class TranscriptCreateRequest(BaseModel):
    session_datetime: Optional[str] = Field(default=None, description="ISO-8601 session date and time.")
    content: Optional[str] = Field(default=None, description="Transcript text.")

class TranscriptResponse(BaseModel):
    id: str = Field(..., description="Unique identifier for the transcript.")
    client_id: str = Field(..., description="Owning client.")
    session_datetime: datetime = Field(..., description="Session date and time (UTC).")
    content: str = Field(..., description="Transcript text.")
    created_at: datetime = Field(..., description="Timestamp of when the transcript was stored.")

class DocumentVersionRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Full content of the new version.")
    title: Optional[str] = Field(default=None, description="New title; defaults to the current one.")

class DocumentVersionsResponse(BaseModel):
    document_id: str
    versions: List[DocumentSnapshot]

class ErrorResponse(BaseModel):
    kind: str
    message: str
    reason: Optional[str] = None
    errors: Optional[Dict[str, List[str]]] = None
