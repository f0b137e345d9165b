"""
Builds the bounded context fed into SOAP note generation.

Only the transcript section is subject to the character budget. Demographics
are small, required by the prompt, and always passed through whole. When the
transcript section is cut, TRUNCATION_MARKER is appended so the model (and a
reviewer reading the note) can tell that content was omitted.
"""
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from .logging import jlog
from .schemas import Client, ContextBlock, Transcript

DEFAULT_TRANSCRIPT_WINDOW = 3
DEFAULT_CHAR_BUDGET = 8000  # ~4k tokens

TRUNCATION_MARKER = "\n\n... [Content Truncated due to length]"
NO_TRANSCRIPTS_PLACEHOLDER = "No transcripts available."
NOT_AVAILABLE = "N/A"


def format_session_datetime(value: datetime, display_timezone: str = "UTC") -> str:
    tz = timezone.utc if display_timezone.upper() == "UTC" else ZoneInfo(display_timezone)
    return value.astimezone(tz).strftime("%Y-%m-%d %H:%M %Z")

def _format_date(value: Optional[date]) -> str:
    return value.isoformat() if value else NOT_AVAILABLE

def _or_na(value: Optional[str]) -> str:
    return value.strip() if value and value.strip() else NOT_AVAILABLE


def format_demographics(client: Client) -> str:
    lines = [
        f"Client Name: {client.name}",
        f"Date of Birth: {_format_date(client.date_of_birth)}",
        f"Gender: {_or_na(client.gender)}",
        f"Insurance: {_or_na(client.insurance_company)}",
        f"Chief Complaint: {_or_na(client.chief_complaint)}",
        f"Diagnosis: {', '.join(client.diagnosis) or NOT_AVAILABLE}",
        f"Medications: {_or_na(client.medications)}",
        f"Treatment Goals: {_or_na(client.treatment_goals)}",
    ]
    return "\n".join(lines)


def select_recent(transcripts: Iterable[Transcript], window: int) -> List[Transcript]:
    """Most recent `window` transcripts by session time, newest first, whatever the input order."""
    return sorted(transcripts, key=lambda t: t.session_datetime, reverse=True)[:window]


def render_transcripts(selected: List[Transcript], display_timezone: str = "UTC") -> str:
    sections = []
    for index, t in enumerate(selected, start=1):
        stamp = format_session_datetime(t.session_datetime, display_timezone)
        sections.append(
            f"--- Transcript {index} ({stamp}) ---\n"
            f"{t.content.strip()}\n"
            f"--- End Transcript {index} ---"
        )
    return "\n\n".join(sections)


def apply_char_budget(section: str, char_budget: int) -> str:
    if len(section) <= char_budget:
        return section
    return section[:char_budget] + TRUNCATION_MARKER


def assemble_context(
    client: Client,
    transcripts: Iterable[Transcript],
    window: int = DEFAULT_TRANSCRIPT_WINDOW,
    char_budget: int = DEFAULT_CHAR_BUDGET,
    display_timezone: str = "UTC",
) -> ContextBlock:
    if window < 1:
        raise ValueError("window must be at least 1")
    if char_budget < 1:
        raise ValueError("char_budget must be at least 1")

    selected = select_recent(transcripts, window)
    rendered = render_transcripts(selected, display_timezone)
    section = apply_char_budget(rendered, char_budget)
    truncated = section != rendered

    if truncated:
        jlog(
            event="context_truncated",
            severity="WARNING",
            client_id=client.id,
            original_length=len(rendered),
            char_budget=char_budget,
        )
    if not section:
        section = NO_TRANSCRIPTS_PLACEHOLDER

    return ContextBlock(
        demographics=format_demographics(client),
        transcripts=section,
        transcript_count=len(selected),
        truncated=truncated,
        original_length=len(rendered),
    )
