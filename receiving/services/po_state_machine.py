"""
Purchase Order State Machine

Only the part of the PO lifecycle the receiving workflow touches lives here:
receipts may be created against CONFIRMED orders, and acceptance posting
flips a fully received order to COMPLETED.
"""

from typing import List, Dict
from datetime import datetime, timezone

from receiving.core.exceptions import ValidationError
from receiving.core.enum_utils import to_enum
from receiving.models.purchase import PurchaseOrderStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
PO_TRANSITIONS: Dict[PurchaseOrderStatus, List[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.DRAFT: [
        PurchaseOrderStatus.CONFIRMED,      # Confirm with supplier
        PurchaseOrderStatus.CANCELLED,      # Cancel draft
    ],
    PurchaseOrderStatus.CONFIRMED: [
        PurchaseOrderStatus.COMPLETED,      # Everything received
        PurchaseOrderStatus.CANCELLED,      # Cancel before delivery
        PurchaseOrderStatus.SHORT_CLOSED,   # Close with partial receipt
    ],
    PurchaseOrderStatus.COMPLETED: [],      # Terminal state
    PurchaseOrderStatus.CANCELLED: [],      # Terminal state
    PurchaseOrderStatus.SHORT_CLOSED: [],   # Terminal state
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    current = to_enum(current_status, PurchaseOrderStatus)
    target = to_enum(new_status, PurchaseOrderStatus)
    if current is None or target is None:
        return False
    return target in PO_TRANSITIONS[current]


def get_allowed_transitions(current_status: str) -> List[PurchaseOrderStatus]:
    """Get list of statuses that can be transitioned to from current status."""
    current = to_enum(current_status, PurchaseOrderStatus)
    if current is None:
        return []
    return PO_TRANSITIONS[current]


def validate_transition(current_status: str, new_status: str) -> None:
    """Validate a status transition. Raises ValidationError if invalid."""
    if not can_transition(current_status, new_status):
        if is_terminal(current_status):
            raise ValidationError(
                f"purchase order in '{current_status}' status cannot be modified, this is a terminal state"
            )
        allowed = get_allowed_transitions(current_status)
        raise ValidationError(
            f"cannot change purchase order from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(s.value for s in allowed)}"
        )


def can_receive_goods(status: str) -> bool:
    """Can goods be received against this PO?"""
    return status == PurchaseOrderStatus.CONFIRMED


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return not get_allowed_transitions(status)


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_po(po, new_status: PurchaseOrderStatus) -> None:
    """
    Transition a PO to a new status.

    Args:
        po: PurchaseOrder model instance
        new_status: Target status

    Raises:
        ValidationError: If transition is not allowed
    """
    validate_transition(po.status, new_status)

    po.status = new_status.value

    if new_status == PurchaseOrderStatus.COMPLETED:
        po.completed_at = datetime.now(timezone.utc)
