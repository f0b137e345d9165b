import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from anyio import to_thread
from google.api_core import exceptions as gax_exceptions
from google.cloud import pubsub_v1
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, stop_after_delay, wait_random_exponential

from .config import settings
from .logging import jlog
from .schemas import Transcript

RETRYABLE_PUBSUB_EXC = (
    gax_exceptions.ServiceUnavailable,
    gax_exceptions.DeadlineExceeded,
    gax_exceptions.InternalServerError,
    gax_exceptions.Aborted,
    gax_exceptions.ResourceExhausted,
    gax_exceptions.Unknown,
    gax_exceptions.Cancelled,
)

def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def transcript_ingested_event(transcript: Transcript) -> Dict[str, Any]:
    # Ids and timestamps only; subscribers re-read content through the API
    return {
        "version": "1",
        "event_type": "transcript.ingested",
        "client_id": transcript.client_id,
        "transcript_id": transcript.id,
        "session_datetime": transcript.session_datetime.isoformat(),
        "ts": _utcnow(),
    }

def soap_note_generated_event(document_id: str, client_id: str, user_id: str) -> Dict[str, Any]:
    return {
        "version": "1",
        "event_type": "soap_note.generated",
        "client_id": client_id,
        "document_id": document_id,
        "user_id": user_id,
        "ts": _utcnow(),
    }


class EventPublisher:
    """Publishes change events so views and caches outside this service can refresh."""

    def __init__(self, publisher: Optional[pubsub_v1.PublisherClient] = None):
        self._publisher = publisher
        self._topics: Dict[str, str] = {}

    @classmethod
    def from_settings(cls) -> "EventPublisher":
        if not settings.pubsub_enabled:
            return cls(None)
        publisher_options = pubsub_v1.types.PublisherOptions(enable_message_ordering=True)
        publisher = pubsub_v1.PublisherClient(publisher_options=publisher_options)
        return cls(publisher)

    @property
    def enabled(self) -> bool:
        return self._publisher is not None

    def _topic_path(self, topic: str) -> str:
        if topic not in self._topics:
            self._topics[topic] = self._publisher.topic_path(settings.project_id, topic)  # type: ignore
        return self._topics[topic]

    async def publish(self, topic: str, event: Dict[str, Any], ordering_key: str) -> Optional[str]:
        """
        Publish with ordering and small bounded retries on transient Pub/Sub errors.
        Returns the message id, or None when publishing is disabled.
        """
        if not self.enabled:
            jlog(event="publish_skipped", reason="pubsub_disabled", event_type=event.get("event_type"))
            return None

        topic_path = self._topic_path(topic)
        data = json.dumps(event, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        attrs = {"event_type": event.get("event_type", "")}

        jlog(event="publish_event", topic=topic, ordering_key=ordering_key, size=len(data), attrs=attrs)

        max_attempts = max(1, settings.pubsub_max_retries + 1)
        wait = wait_random_exponential(
            multiplier=max(0.01, settings.pubsub_backoff_base_ms / 1000.0),
            max=max(settings.pubsub_backoff_cap_ms / 1000.0, settings.pubsub_backoff_base_ms / 1000.0),
        )
        stop = (stop_after_attempt(max_attempts) | stop_after_delay(settings.pubsub_retry_budget_s))

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RETRYABLE_PUBSUB_EXC),
            wait=wait,
            stop=stop,
            reraise=True,
            before_sleep=lambda rs: jlog(
                event="publish_retry",
                attempt=rs.attempt_number,
                wait_s=getattr(getattr(rs, "next_action", None), "sleep", None),
                error=str(rs.outcome.exception()) if rs.outcome and rs.outcome.failed else None,
                topic=topic,
                ordering_key=ordering_key,
            ),
        ):
            with attempt:
                def _pub_sync() -> str:
                    future = self._publisher.publish(  # type: ignore
                        topic_path,
                        data=data,
                        ordering_key=ordering_key,
                        **attrs,
                    )
                    return future.result(timeout=settings.pubsub_publish_timeout_s)

                msg_id = await to_thread.run_sync(_pub_sync)
                jlog(event="publish_ok", topic=topic, message_id=msg_id, ordering_key=ordering_key)
                return msg_id
        return None

    async def publish_quietly(self, topic: str, event: Dict[str, Any], ordering_key: str) -> Optional[str]:
        """Background-task entry point: a failed publish is logged, never raised."""
        try:
            return await self.publish(topic, event, ordering_key)
        except Exception as e:
            jlog(
                event="publish_failed",
                severity="ERROR",
                topic=topic,
                event_type=event.get("event_type"),
                ordering_key=ordering_key,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None
