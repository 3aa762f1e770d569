"""TicketGate — Exception hierarchy.

All exceptions raised by the core inherit from TicketGateError so that
callers can catch the full family with a single except clause when needed.
Every error carries a machine-checkable ``kind`` (used for branching) and a
human-readable ``user_message`` (shown to the end actor).  Internal code
never inspects message text.

Hierarchy:
    TicketGateError
    ├── AccessDeniedError
    │   ├── BlacklistedError
    │   ├── NonHumanActorError
    │   ├── ForbiddenError
    │   ├── NotAdminError
    │   └── NotPurchasedError
    ├── RateLimitedError
    ├── ConflictError
    │   ├── AlreadyHasSessionError
    │   ├── AlreadyCompletedError
    │   ├── InvalidStateError
    │   ├── OutOfStockError
    │   └── CatalogFullError
    ├── NotFoundError
    │   ├── SessionNotFoundError
    │   ├── ItemNotFoundError
    │   ├── SaleNotFoundError
    │   └── ContentUnavailableError
    ├── IntegrityError
    │   ├── DecryptionError
    │   └── IntegrityViolationError
    ├── ResourceError
    ├── ConfigurationError
    │   └── CategoryNotConfiguredError
    ├── ValidationError
    ├── StorageError
    └── UnknownActionError
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ticketgate.store.models import Session


class ErrorKind(str, Enum):
    """Machine-checkable error identifiers."""

    BLACKLISTED = "BLACKLISTED"
    NON_HUMAN = "NON_HUMAN"
    FORBIDDEN = "FORBIDDEN"
    NOT_ADMIN = "NOT_ADMIN"
    NOT_PURCHASED = "NOT_PURCHASED"
    RATE_LIMITED = "RATE_LIMITED"
    ALREADY_HAS_SESSION = "ALREADY_HAS_SESSION"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    INVALID_STATE = "INVALID_STATE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    CATALOG_FULL = "CATALOG_FULL"
    NOT_FOUND = "NOT_FOUND"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    SALE_NOT_FOUND = "SALE_NOT_FOUND"
    CONTENT_UNAVAILABLE = "CONTENT_UNAVAILABLE"
    DECRYPT_FAILURE = "DECRYPT_FAILURE"
    INTEGRITY_VIOLATION = "INTEGRITY_VIOLATION"
    RESOURCE_FAILURE = "RESOURCE_FAILURE"
    CATEGORY_NOT_CONFIGURED = "CATEGORY_NOT_CONFIGURED"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    INVALID_INPUT = "INVALID_INPUT"
    STORAGE_FAILURE = "STORAGE_FAILURE"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    INTERNAL = "INTERNAL"


class TicketGateError(Exception):
    """Base exception for all TicketGate errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    user_message: str = "An internal error occurred. Our team has been notified."

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}
        if user_message is not None:
            self.user_message = user_message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, kind={self.kind.value}, context={self.context})"


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------


class AccessDeniedError(TicketGateError):
    """Base for permission failures.  Always reported, never retried."""

    kind = ErrorKind.FORBIDDEN
    user_message = "Access denied for security reasons."


class BlacklistedError(AccessDeniedError):
    kind = ErrorKind.BLACKLISTED

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User '{user_id}' is blacklisted", context={"user_id": user_id})
        self.user_id = user_id


class NonHumanActorError(AccessDeniedError):
    kind = ErrorKind.NON_HUMAN

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Actor '{user_id}' is an automated account", context={"user_id": user_id})
        self.user_id = user_id


class ForbiddenError(AccessDeniedError):
    """The actor lacks the capability required for this session operation."""

    kind = ErrorKind.FORBIDDEN

    def __init__(self, user_id: str, operation: str, session_id: str | None = None) -> None:
        super().__init__(
            f"User '{user_id}' may not {operation}"
            + (f" on session '{session_id}'" if session_id else ""),
            context={"user_id": user_id, "operation": operation, "session_id": session_id},
            user_message="You do not have permission to do that.",
        )
        self.user_id = user_id
        self.operation = operation
        self.session_id = session_id


class NotAdminError(AccessDeniedError):
    kind = ErrorKind.NOT_ADMIN
    user_message = "You do not have permission to use this command."

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User '{user_id}' is not an administrator", context={"user_id": user_id})
        self.user_id = user_id


class NotPurchasedError(AccessDeniedError):
    kind = ErrorKind.NOT_PURCHASED
    user_message = "You do not own this product or the purchase has not been confirmed."

    def __init__(self, user_id: str, item_id: int) -> None:
        super().__init__(
            f"User '{user_id}' has no completed sale for item {item_id}",
            context={"user_id": user_id, "item_id": item_id},
        )
        self.user_id = user_id
        self.item_id = item_id


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimitedError(TicketGateError):
    """A named limiter has no points left for this subject."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, subject_id: str, limiter: str, reset_seconds: int) -> None:
        super().__init__(
            f"Rate limit '{limiter}' exhausted for '{subject_id}'",
            context={"subject_id": subject_id, "limiter": limiter, "reset_seconds": reset_seconds},
            user_message=f"Too many attempts. Try again in {reset_seconds}s.",
        )
        self.subject_id = subject_id
        self.limiter = limiter
        self.reset_seconds = reset_seconds


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictError(TicketGateError):
    """Base for conflicting writes.  Callers may redirect but must not retry."""

    kind = ErrorKind.INVALID_STATE
    user_message = "That operation conflicts with the current state."


class AlreadyHasSessionError(ConflictError):
    """The owner already holds an OPEN session; ``existing`` points at it."""

    kind = ErrorKind.ALREADY_HAS_SESSION

    def __init__(self, owner_id: str, existing: Session | None = None) -> None:
        channel_id = existing.channel_id if existing is not None else None
        mention = f"<#{channel_id}>" if channel_id else "channel not found"
        super().__init__(
            f"User '{owner_id}' already has an open session",
            context={"owner_id": owner_id, "session_id": channel_id},
            user_message=f"You already have an open ticket: {mention}",
        )
        self.owner_id = owner_id
        self.existing = existing


class AlreadyCompletedError(ConflictError):
    kind = ErrorKind.ALREADY_COMPLETED
    user_message = "This sale has already been completed."

    def __init__(self, sale_id: int) -> None:
        super().__init__(f"Sale {sale_id} is already completed", context={"sale_id": sale_id})
        self.sale_id = sale_id


class InvalidStateError(ConflictError):
    kind = ErrorKind.INVALID_STATE

    def __init__(self, entity: str, entity_id: Any, state: str, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} {entity} {entity_id} in state '{state}'",
            context={"entity": entity, "entity_id": entity_id, "state": state, "operation": operation},
        )
        self.state = state


class OutOfStockError(ConflictError):
    kind = ErrorKind.OUT_OF_STOCK
    user_message = "This product is out of stock."

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Item {item_id} is out of stock", context={"item_id": item_id})
        self.item_id = item_id


class CatalogFullError(ConflictError):
    kind = ErrorKind.CATALOG_FULL

    def __init__(self, capacity: int) -> None:
        super().__init__(
            f"Catalog capacity of {capacity} active items reached",
            context={"capacity": capacity},
            user_message=f"Maximum of {capacity} products reached.",
        )
        self.capacity = capacity


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(TicketGateError):
    kind = ErrorKind.NOT_FOUND
    user_message = "The requested record was not found."


class SessionNotFoundError(NotFoundError):
    kind = ErrorKind.NOT_FOUND
    user_message = "This is not a valid ticket channel."

    def __init__(self, session_id: str) -> None:
        super().__init__(f"No session for channel '{session_id}'", context={"session_id": session_id})
        self.session_id = session_id


class ItemNotFoundError(NotFoundError):
    kind = ErrorKind.ITEM_NOT_FOUND
    user_message = "Product not found or not available."

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Catalog item {item_id} not found or inactive", context={"item_id": item_id})
        self.item_id = item_id


class SaleNotFoundError(NotFoundError):
    kind = ErrorKind.SALE_NOT_FOUND
    user_message = "Sale not found."

    def __init__(self, sale_id: int) -> None:
        super().__init__(f"Sale {sale_id} not found", context={"sale_id": sale_id})
        self.sale_id = sale_id


class ContentUnavailableError(NotFoundError):
    kind = ErrorKind.CONTENT_UNAVAILABLE
    user_message = "Digital content is not available for this product."

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Item {item_id} has no digital payload", context={"item_id": item_id})
        self.item_id = item_id


# ---------------------------------------------------------------------------
# Integrity (fatal family)
# ---------------------------------------------------------------------------


class IntegrityError(TicketGateError):
    """Tamper or decryption failures.  Never degrade silently."""

    kind = ErrorKind.DECRYPT_FAILURE


class DecryptionError(IntegrityError):
    kind = ErrorKind.DECRYPT_FAILURE

    def __init__(self, reason: str) -> None:
        super().__init__(f"Decryption failed: {reason}", context={"reason": reason})
        self.reason = reason


class IntegrityViolationError(IntegrityError):
    kind = ErrorKind.INTEGRITY_VIOLATION
    user_message = "The service is halted for security reasons."

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            "Code integrity digest mismatch",
            context={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


# ---------------------------------------------------------------------------
# External resources / configuration / input / storage
# ---------------------------------------------------------------------------


class ResourceError(TicketGateError):
    """An external channel-provider call failed.  Partial writes are rolled back."""

    kind = ErrorKind.RESOURCE_FAILURE

    def __init__(self, operation: str, reason: str, resource_id: str | None = None) -> None:
        super().__init__(
            f"Channel provider '{operation}' failed: {reason}",
            context={"operation": operation, "reason": reason, "resource_id": resource_id},
        )
        self.operation = operation
        self.resource_id = resource_id


class ConfigurationError(TicketGateError):
    kind = ErrorKind.INVALID_CONFIGURATION


class CategoryNotConfiguredError(ConfigurationError):
    kind = ErrorKind.CATEGORY_NOT_CONFIGURED
    user_message = "The ticket category is not configured. Run the channel setup first."

    def __init__(self) -> None:
        super().__init__("Ticket category is not configured")


class ValidationError(TicketGateError):
    kind = ErrorKind.INVALID_INPUT

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(
            f"Invalid value for '{field}': {reason}",
            context={"field": field, "reason": reason},
            user_message=reason,
        )
        self.field = field


class StorageError(TicketGateError):
    """Repository operation failed."""

    kind = ErrorKind.STORAGE_FAILURE


class UnknownActionError(TicketGateError):
    kind = ErrorKind.UNKNOWN_ACTION
    user_message = "Action not recognised."

    def __init__(self, custom_id: str) -> None:
        super().__init__(f"Unknown action identifier '{custom_id}'", context={"custom_id": custom_id})
        self.custom_id = custom_id
