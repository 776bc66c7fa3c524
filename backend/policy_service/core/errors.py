"""Error kinds raised by the store and reported by the lifecycle manager"""
from typing import List, Optional


class PolicyServiceError(Exception):
    """Base error; ``kind`` is what the HTTP layer maps to a status code."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PolicyValidationError(PolicyServiceError):
    """Input rejected before any write"""

    kind = "validation"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class NotFoundError(PolicyServiceError):
    """No record matched, or the match was excluded by its status"""

    kind = "not_found"


class ConflictError(PolicyServiceError):
    """Identity collision on insert"""

    kind = "conflict"


class StoreError(PolicyServiceError):
    """Opaque failure from the persistence layer"""

    kind = "store_error"


class NotificationError(PolicyServiceError):
    """Event delivery failed. Logged, never surfaced to callers."""

    kind = "notification"
