from opentelemetry import trace
import contextvars, hashlib, json, logging, os, time
from typing import Optional

SERVICE_NAME = os.getenv("SERVICE_NAME", "notes-service")
ENV = os.getenv("ENVIRONMENT", "local")

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
_logger = logging.getLogger(SERVICE_NAME)

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("correlation_id", default=None)

def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id.set(correlation_id)

def hash_preview(s: str, n: int = 12) -> str:
    """Loggable stand-in for clinical text: never log the text itself."""
    return f"sha256={hashlib.sha256(s.encode('utf-8')).hexdigest()[:n]},len={len(s)}"

def jlog(event: str = "", severity: str = "INFO", **fields):
    span = trace.get_current_span()
    ctx = span.get_span_context() if span else None
    trace_id = f"{ctx.trace_id:032x}" if ctx and ctx.trace_id else None
    span_id = f"{ctx.span_id:016x}" if ctx and ctx.span_id else None

    record = {
        "event": event,
        "severity": severity,
        "service": SERVICE_NAME,
        "env": ENV,
        "ts": time.time(),
        "trace_id": trace_id,
        "span_id": span_id,
    }
    correlation_id = _correlation_id.get()
    if correlation_id:
        record["correlation_id"] = correlation_id
    record.update(fields)
    _logger.log(getattr(logging, severity, logging.INFO), json.dumps(record, ensure_ascii=False, default=str))
