from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

class Settings(BaseSettings):

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    service_name: str = "notes-service"
    project_id: Optional[str] = None
    environment: str = "dev"

    # Firestore
    firestore_database: Optional[str] = None
    clients_collection: str = "clients"
    transcripts_collection: str = "transcripts"  # sub-collection of a client document
    documents_collection: str = "documents"

    storage_max_retries: int = 2
    storage_backoff_base_ms: int = 200
    storage_backoff_cap_ms: int = 3000

    # Model
    soap_model: str = "llama3.1:8b"
    llm_base_url: str = "http://localhost:11434"
    llm_api_key: str = "dummy"
    soap_temperature: float = 0.4
    soap_timeout_s: float = Field(default=90.0, gt=0)

    # Context policy
    transcript_window: int = Field(default=3, ge=1)
    transcript_char_budget: int = Field(default=8000, ge=1)
    display_timezone: str = "UTC"

    # Pub/Sub
    pubsub_enabled: bool = False
    transcript_ingested_topic: str = "transcript-ingested"
    soap_note_generated_topic: str = "soap-note-generated"
    pubsub_publish_timeout_s: float = 10.0
    pubsub_max_retries: int = 3
    pubsub_retry_budget_s: float = 30.0
    pubsub_backoff_base_ms: int = 200
    pubsub_backoff_cap_ms: int = 5000

    # Tracing
    trace_exporter: Literal["cloud_trace", "console", "none"] = "console"
    trace_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("display_timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        if v.upper() == "UTC":
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown IANA time zone: {v!r}")
        return v

settings = Settings() # type: ignore
