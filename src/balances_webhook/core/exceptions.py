"""
Exception hierarchy for the webhook pipeline.

Pipeline stages raise these; the webhook processor is the single place that
turns them into a caller-visible outcome.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable error codes reported to callers and in logs."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Envelope
    UNAUTHORIZED = "UNAUTHORIZED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UNSUPPORTED_CONTENT_TYPE = "UNSUPPORTED_CONTENT_TYPE"
    STALE_REQUEST = "STALE_REQUEST"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_JSON = "INVALID_JSON"

    # Payload
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PARSE_ERROR = "PARSE_ERROR"

    # Routing and persistence
    SOURCE_ERROR = "SOURCE_ERROR"
    NO_SUBSCRIBERS = "NO_SUBSCRIBERS"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"

    # Management
    NOT_FOUND = "NOT_FOUND"
    ALREADY_ASSOCIATED = "ALREADY_ASSOCIATED"


class WebhookError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(WebhookError):
    """Raised when the service is missing required configuration."""

    def __init__(self, message: str = "Server configuration error"):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, 500)


class EnvelopeError(WebhookError):
    """Raised when the transport envelope (auth, size, headers) is rejected."""

    def __init__(self, message: str, error_code: ErrorCode, status_code: int = 400):
        super().__init__(message, error_code, status_code)


class PayloadValidationError(WebhookError):
    """Raised when a structured payload fails schema validation."""

    def __init__(self, issues: list, webhook_id: Optional[str] = None):
        summary = ", ".join(f"{issue.field}: {issue.message}" for issue in issues)
        super().__init__(
            f"Validation failed: {summary}",
            ErrorCode.VALIDATION_ERROR,
            400,
            details={"issues": [issue.model_dump() for issue in issues]},
        )
        self.issues = issues
        self.webhook_id = webhook_id


class MessageParseError(WebhookError):
    """Raised when a free-text message does not match the bank template."""

    def __init__(self, reason: str):
        super().__init__(f"Parse failed: {reason}", ErrorCode.PARSE_ERROR, 400)
        self.reason = reason


class SourceResolutionError(WebhookError):
    """Raised when a source cannot be found, created or queried."""

    def __init__(self, message: str = "Failed to process source"):
        super().__init__(message, ErrorCode.SOURCE_ERROR, 500)


class NoSubscribersError(WebhookError):
    """Raised when a source resolves but no user is subscribed to it."""

    def __init__(self, source_id: str):
        super().__init__(
            "No users configured for this source",
            ErrorCode.NO_SUBSCRIBERS,
            404,
            details={"source_id": source_id},
        )
        self.source_id = source_id


class PersistenceError(WebhookError):
    """Raised when the store fails for a reason other than a duplicate key."""

    def __init__(self, message: str = "Failed to store transaction"):
        super().__init__(message, ErrorCode.PERSISTENCE_ERROR, 500)


class NotFoundError(WebhookError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            ErrorCode.NOT_FOUND,
            404,
            details={"resource": resource, "identifier": str(identifier)},
        )


class AlreadyAssociatedError(WebhookError):
    """Raised when subscribing a user to a source they are already subscribed to."""

    def __init__(self, user_id: str, source_id: str):
        super().__init__(
            "User is already associated with this source",
            ErrorCode.ALREADY_ASSOCIATED,
            409,
            details={"user_id": user_id, "source_id": source_id},
        )
