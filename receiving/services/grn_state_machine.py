"""
Goods Receipt State Machine

This module is the single place where GRN status transitions are decided.

    PENDING --receive--> RECEIVED --inspect--> INSPECTED --accept--> ACCEPTED | PARTIAL
                                                          --reject--> REJECTED

No skipping, no backward transitions. ACCEPTED, PARTIAL and REJECTED are terminal.
"""

from typing import Dict, List, Optional
from datetime import datetime, timezone
import uuid

from receiving.core.exceptions import ValidationError
from receiving.core.enum_utils import to_enum
from receiving.models.purchase import GoodsReceiptStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

GRN_TRANSITIONS: Dict[GoodsReceiptStatus, List[GoodsReceiptStatus]] = {
    GoodsReceiptStatus.PENDING: [GoodsReceiptStatus.RECEIVED],
    GoodsReceiptStatus.RECEIVED: [GoodsReceiptStatus.INSPECTED],
    GoodsReceiptStatus.INSPECTED: [
        GoodsReceiptStatus.ACCEPTED,
        GoodsReceiptStatus.PARTIAL,
        GoodsReceiptStatus.REJECTED,
    ],
    GoodsReceiptStatus.ACCEPTED: [],
    GoodsReceiptStatus.PARTIAL: [],
    GoodsReceiptStatus.REJECTED: [],
}

# Status a receipt must be in for each workflow action
REQUIRED_STATUS: Dict[str, GoodsReceiptStatus] = {
    "receive": GoodsReceiptStatus.PENDING,
    "inspect": GoodsReceiptStatus.RECEIVED,
    "accept": GoodsReceiptStatus.INSPECTED,
    "reject": GoodsReceiptStatus.INSPECTED,
    "update": GoodsReceiptStatus.PENDING,
    "delete": GoodsReceiptStatus.PENDING,
}

# Dispositions only make sense once quantities have been inspected
DISPOSITION_STATUSES = (
    GoodsReceiptStatus.INSPECTED,
    GoodsReceiptStatus.ACCEPTED,
    GoodsReceiptStatus.PARTIAL,
    GoodsReceiptStatus.REJECTED,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _as_status(status: str) -> GoodsReceiptStatus:
    parsed = to_enum(status, GoodsReceiptStatus)
    if parsed is None:
        raise ValidationError(f"unknown goods receipt status '{status}'")
    return parsed


def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    current = to_enum(current_status, GoodsReceiptStatus)
    target = to_enum(new_status, GoodsReceiptStatus)
    if current is None or target is None:
        return False
    return target in GRN_TRANSITIONS[current]


def get_allowed_transitions(current_status: str) -> List[GoodsReceiptStatus]:
    return GRN_TRANSITIONS[_as_status(current_status)]


def is_terminal(status: str) -> bool:
    return not get_allowed_transitions(status)


def can_edit(status: str) -> bool:
    return _as_status(status) == GoodsReceiptStatus.PENDING


def can_delete(status: str) -> bool:
    return _as_status(status) == GoodsReceiptStatus.PENDING


def can_set_disposition(status: str) -> bool:
    return _as_status(status) in DISPOSITION_STATUSES


def require_status(current_status: str, action: str) -> None:
    """
    Guard for a workflow action.

    Raises:
        ValidationError: naming the status the action requires
    """
    required = REQUIRED_STATUS[action]
    current = _as_status(current_status)
    if current != required:
        raise ValidationError(
            f"can only {action} goods receipts in {required.value} status "
            f"(current status: {current.value})"
        )


def validate_transition(current_status: str, new_status: str) -> None:
    """Validate a status transition. Raises ValidationError if invalid."""
    if can_transition(current_status, new_status):
        return
    if is_terminal(current_status):
        raise ValidationError(
            f"goods receipt in '{current_status}' status cannot change status, this is a terminal state"
        )
    allowed = get_allowed_transitions(current_status)
    raise ValidationError(
        f"cannot change goods receipt from '{current_status}' to '{new_status}'. "
        f"Allowed transitions: {', '.join(s.value for s in allowed)}"
    )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_grn(grn, new_status: GoodsReceiptStatus, user_id: Optional[uuid.UUID] = None) -> None:
    """
    Transition a GRN to a new status.

    Validates the transition, updates the status and stamps the actor and
    timestamp belonging to the stage that was reached.

    Raises:
        ValidationError: If transition is not allowed
    """
    validate_transition(grn.status, new_status)

    grn.status = new_status.value

    now = datetime.now(timezone.utc)

    if new_status == GoodsReceiptStatus.RECEIVED:
        grn.received_by = user_id
        grn.received_at = now

    elif new_status == GoodsReceiptStatus.INSPECTED:
        grn.inspected_by = user_id
        grn.inspected_at = now
