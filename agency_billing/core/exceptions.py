"""Error taxonomy for the billing module.

Every failure surfaced by the services is one of these. The HTTP layer maps
them to status codes in ``agency_billing.main``.
"""
from typing import Iterable, List, Optional


class BillingError(Exception):
    """Base class for all billing errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BillingError):
    """Malformed or missing input. Raised before any write.

    Carries one message per violated field so callers can highlight every
    problem at once.
    """

    def __init__(self, errors: Iterable[str], message: str = "Validation failed"):
        self.errors: List[str] = list(errors)
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.message}: " + "; ".join(self.errors)


class InvalidStatusTransition(ValidationError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, document: str, current: str, requested: str, allowed: Iterable[str]):
        allowed = list(allowed)
        if allowed:
            detail = (
                f"Cannot change {document} from '{current}' to '{requested}'. "
                f"Allowed transitions: {', '.join(allowed)}"
            )
        else:
            detail = f"{document.capitalize()} in '{current}' status cannot change status. This is a terminal state."
        super().__init__([detail], message="Invalid status transition")
        self.current = current
        self.requested = requested


class NotFoundError(BillingError):
    """Referenced document does not exist or is not visible to the caller."""

    def __init__(self, entity: str, identifier: Optional[object] = None):
        detail = f"{entity} not found" if identifier is None else f"{entity} {identifier} not found"
        super().__init__(detail)
        self.entity = entity


class AuthorizationError(BillingError):
    """Caller lacks the admin capability."""

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


class NumberGenerationError(BillingError):
    """The numbering service could not reserve a document number."""

    def __init__(self, document_type: str):
        super().__init__(f"Could not generate a {document_type} number")
        self.document_type = document_type


class StoreError(BillingError):
    """Any other backend failure. Never carries backend internals."""

    retryable: bool = False

    def __init__(self, message: str = "Billing store operation failed"):
        super().__init__(message)


class StoreTimeoutError(StoreError):
    """A store round trip exceeded the configured timeout."""

    retryable = True

    def __init__(self, operation: str):
        super().__init__(f"Billing store did not respond in time ({operation}). Please retry.")
        self.operation = operation


class ConcurrencyConflictError(StoreError):
    """The document changed since the caller last read it."""

    def __init__(self, entity: str):
        super().__init__(f"{entity} was modified by someone else. Reload and try again.")
        self.entity = entity
