from typing import Dict, List, Optional


class NotesError(Exception):
    """Base for every error that may cross the service boundary."""

    kind: str = "NotesError"
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, object]:
        return {"kind": self.kind, "message": self.message}


class AuthorizationError(NotesError):
    """Client missing or owned by someone else. The two causes are never distinguished."""

    kind = "AuthorizationError"

    def __init__(self, message: str = "Client not found or access denied."):
        super().__init__(message)
        self.reason = "NotFoundOrDenied"


class ValidationError(NotesError):
    kind = "ValidationError"

    def __init__(self, errors: Dict[str, List[str]], message: str = "Validation failed. Please check the fields."):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> Dict[str, object]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class DuplicateSessionError(NotesError):
    kind = "DuplicateSessionError"

    def __init__(
        self,
        message: str = "A transcript for this client at this exact session date and time already exists.",
    ):
        super().__init__(message)

    def to_dict(self) -> Dict[str, object]:
        data = super().to_dict()
        data["errors"] = {"session_datetime": ["A transcript for this exact date/time already exists."]}
        return data


class GenerationError(NotesError):
    kind = "GenerationError"

    EMPTY_OUTPUT = "EmptyOutput"
    UPSTREAM_FAILURE = "UpstreamFailure"
    TIMEOUT = "Timeout"

    _MESSAGES = {
        EMPTY_OUTPUT: "The language model returned no content for the SOAP note.",
        UPSTREAM_FAILURE: "The language model call failed.",
        TIMEOUT: "The language model did not finish within the time limit.",
    }

    def __init__(self, reason: str, detail: Optional[str] = None):
        super().__init__(self._MESSAGES.get(reason, "SOAP note generation failed."))
        self.reason = reason
        self.detail = detail
        # Caller may re-run the whole pipeline; an empty answer is unlikely to improve.
        self.retryable = reason in (self.UPSTREAM_FAILURE, self.TIMEOUT)

    def to_dict(self) -> Dict[str, object]:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class StorageError(NotesError):
    kind = "StorageError"
    retryable = True

    def __init__(self, operation: str, message: str = "Database error. Please try again."):
        super().__init__(message)
        self.operation = operation


class DocumentNotFoundError(NotesError):
    kind = "NotFound"

    def __init__(self, message: str = "Document not found or access denied."):
        super().__init__(message)
