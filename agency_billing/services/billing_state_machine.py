"""
Quotation and Invoice State Machines

All status changes on quotations and invoices are checked here.

Quotation:  draft -> sent -> accepted | rejected | expired
Invoice:    draft -> sent -> pending -> paid
            sent | pending -> overdue -> pending
            any non-terminal -> cancelled
"""

from typing import List, Dict, Union
from enum import Enum

from agency_billing.core.exceptions import InvalidStatusTransition
from agency_billing.models.billing import QuotationStatus, InvoiceStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
QUOTATION_TRANSITIONS: Dict[str, List[str]] = {
    QuotationStatus.DRAFT.value: [
        QuotationStatus.SENT.value,         # Share with the client
    ],
    QuotationStatus.SENT.value: [
        QuotationStatus.ACCEPTED.value,     # Client agreed
        QuotationStatus.REJECTED.value,     # Client declined
        QuotationStatus.EXPIRED.value,      # Validity window passed
    ],
    QuotationStatus.ACCEPTED.value: [],     # Terminal - may be converted to an invoice
    QuotationStatus.REJECTED.value: [],     # Terminal
    QuotationStatus.EXPIRED.value: [],      # Terminal
}

INVOICE_TRANSITIONS: Dict[str, List[str]] = {
    InvoiceStatus.DRAFT.value: [
        InvoiceStatus.SENT.value,
        InvoiceStatus.CANCELLED.value,
    ],
    InvoiceStatus.SENT.value: [
        InvoiceStatus.PENDING.value,        # Awaiting payment
        InvoiceStatus.PAID.value,           # Settled in full
        InvoiceStatus.OVERDUE.value,
        InvoiceStatus.CANCELLED.value,
    ],
    InvoiceStatus.PENDING.value: [
        InvoiceStatus.PAID.value,
        InvoiceStatus.OVERDUE.value,        # Past due date with balance outstanding
        InvoiceStatus.CANCELLED.value,
    ],
    InvoiceStatus.OVERDUE.value: [
        InvoiceStatus.PENDING.value,        # Due date extended
        InvoiceStatus.PAID.value,
        InvoiceStatus.CANCELLED.value,
    ],
    InvoiceStatus.PAID.value: [],           # Terminal
    InvoiceStatus.CANCELLED.value: [],      # Terminal
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _value(status: Union[str, Enum]) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def can_transition(transitions: Dict[str, List[str]], current_status, new_status) -> bool:
    """Check if a transition is allowed."""
    return _value(new_status) in transitions.get(_value(current_status), [])


def get_allowed_transitions(transitions: Dict[str, List[str]], current_status) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return list(transitions.get(_value(current_status), []))


def _validate(document: str, transitions: Dict[str, List[str]], current_status, new_status) -> None:
    current, requested = _value(current_status), _value(new_status)
    if current == requested:
        return  # No change, always allowed

    if not can_transition(transitions, current, requested):
        raise InvalidStatusTransition(
            document,
            current,
            requested,
            get_allowed_transitions(transitions, current),
        )


def validate_quotation_transition(current_status, new_status) -> None:
    """Raise InvalidStatusTransition if the quotation cannot move to new_status."""
    _validate("quotation", QUOTATION_TRANSITIONS, current_status, new_status)


def validate_invoice_transition(current_status, new_status) -> None:
    """Raise InvalidStatusTransition if the invoice cannot move to new_status."""
    _validate("invoice", INVOICE_TRANSITIONS, current_status, new_status)


# =============================================================================
# STATUS CHECK HELPERS (for common operations)
# =============================================================================

def can_convert_to_invoice(status, converted: bool) -> bool:
    """Only accepted quotations that have not been invoiced yet."""
    return _value(status) == QuotationStatus.ACCEPTED.value and not converted


def can_record_payment(status) -> bool:
    """Payments are not accepted on settled or cancelled invoices."""
    return _value(status) not in (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value)


def is_terminal_quotation(status) -> bool:
    return not QUOTATION_TRANSITIONS.get(_value(status))


def is_terminal_invoice(status) -> bool:
    return not INVOICE_TRANSITIONS.get(_value(status))
