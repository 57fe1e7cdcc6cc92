"""Hookshot exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HookshotError for easy catching.

Delivery failures are not exceptions: the executor reports them as
DeliveryResult values and the dispatcher/retry scheduler record them.
"""

from __future__ import annotations


class HookshotError(Exception):
    """Base exception for all Hookshot errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookshot_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookshotError):
    """Invalid input provided.

    Raised when a subscriber registration or event fails validation,
    e.g. an unsupported URL scheme or an unknown event type.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HookshotError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "subscriber", "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HookshotError):
    """Storage operation failed.

    Raised when the subscriber/delivery store is unavailable. This is the
    only error allowed to escape dispatch() and process_pending_retries().
    """

    code: str = "storage_error"


class LimitExceededError(HookshotError):
    """Per-owner subscriber limit reached.

    Attributes:
        limit: The configured maximum.
    """

    code: str = "limit_exceeded"

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Maximum webhook limit reached ({limit})")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "limit": self.limit,
                "message": self.message,
            }
        }


class ConfigurationError(HookshotError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"
