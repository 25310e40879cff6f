from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


class ResumePatchError(RuntimeError):
    code = "resume_patch_error"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code or self.code
        self.details = dict(details or {})
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": str(self),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ValidationError(ResumePatchError):
    """Bad input detected before any stage runs. Never retried."""

    code = "validation_error"


class ProcessingError(ResumePatchError):
    """A stage's own logic failed."""

    code = "processing_error"


class CollaboratorError(ResumePatchError):
    """An external collaborator (extractor, classifier, fetcher, renderer) failed."""

    code = "collaborator_error"


class ExtractionError(CollaboratorError):
    code = "extraction_failed"


class FetchError(CollaboratorError):
    code = "fetch_failed"


class CollaboratorTimeout(CollaboratorError):
    code = "collaborator_timeout"


class InvalidResponseError(CollaboratorError):
    code = "invalid_response"


class MissingCredentialsError(CollaboratorError):
    code = "missing_credentials"


class RenderError(CollaboratorError):
    code = "render_failed"


class WorkflowError(ResumePatchError):
    """Terminal failure of a run: the failing stage plus every error collected on the way."""

    code = "workflow_failed"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None,
        errors: list[str] | None = None,
        retry_count: int = 0,
        state: Any = None,
    ):
        super().__init__(
            message,
            details={"stage": stage, "errors": list(errors or []), "retry_count": retry_count},
        )
        self.stage = stage
        self.errors = list(errors or [])
        self.retry_count = retry_count
        self.state = state
