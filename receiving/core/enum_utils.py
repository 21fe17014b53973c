"""
Enum Utilities for VARCHAR-based Status Fields

STORAGE CONVENTION:
━━━━━━━━━━━━━━━━━━━
• Database: VARCHAR(50) - NOT PostgreSQL ENUM
• SQLAlchemy: String(50) with Mapped[str]
• Python: closed `str` Enum classes (GoodsReceiptStatus, RejectionDisposition, ...)
• Case: All enum values stored in UPPERCASE

DATA FLOW:
━━━━━━━━━━
INPUT (API Request):
    Pydantic Enum → .value → String → Database
    Example: RejectionDisposition.RETURNED → "RETURNED" → VARCHAR

READ (Service logic):
    Database → String → to_enum() → Enum
    Example: VARCHAR "INSPECTED" → GoodsReceiptStatus.INSPECTED

Because the enums subclass `str`, `grn.status == GoodsReceiptStatus.PENDING`
compares by value and works against raw column values too.
"""

from enum import Enum
from typing import Any, Optional, TypeVar, Type, Set


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(GoodsReceiptStatus.PENDING)
        'PENDING'
        >>> get_enum_value("PENDING")
        'PENDING'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_enum(value: Any, enum_class: Type[T]) -> Optional[T]:
    """
    Convert a string value to an enum instance.

    Returns None for unknown values so callers can decide how strict to be.

    Examples:
        >>> to_enum("PENDING", GoodsReceiptStatus)
        GoodsReceiptStatus.PENDING
        >>> to_enum("INVALID", GoodsReceiptStatus)
        None
    """
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except (ValueError, KeyError):
        return None


def enum_values(enum_class: Type[Enum]) -> list:
    """
    Get all values from an enum class.

    Examples:
        >>> enum_values(ToleranceLevel)
        ['COMPANY', 'CATEGORY', 'PRODUCT']
    """
    return [e.value for e in enum_class]


def enum_comment(enum_class: Type[Enum]) -> str:
    """
    Generate a comment string for a VARCHAR column.

    Examples:
        >>> enum_comment(ToleranceLevel)
        'COMPANY, CATEGORY, PRODUCT'
    """
    return ", ".join(enum_values(enum_class))


# =============================================================================
# CASE NORMALIZATION FOR PYDANTIC SCHEMAS
# =============================================================================

def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Returns the original value otherwise so Pydantic raises the validation error.

    Examples:
        >>> normalize_to_uppercase('returned', {'RETURNED', 'WRITTEN_OFF'})
        'RETURNED'
        >>> normalize_to_uppercase('invalid', {'RETURNED', 'WRITTEN_OFF'})
        'invalid'
    """
    if value is None:
        return value
    if isinstance(value, str):
        upper_v = value.strip().upper()
        if upper_v in valid_values:
            return upper_v
    return value

