"""
Service-level exceptions.

Services raise these instead of HTTPException so the same code runs from
endpoints, scripts and tests. `receiving.main` renders them as
`{"success": false, "error": {"code", "message"}}` with `status_code`.
"""
from typing import Optional


class ReceivingError(Exception):
    """Base class for business errors raised by services."""
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(ReceivingError):
    """Request is well-formed but violates a business rule (bad status, quantity, date...)."""
    status_code = 400
    code = "BAD_REQUEST"


class NotFoundError(ReceivingError):
    """Referenced receipt, purchase order, product or item does not exist in scope."""
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ReceivingError):
    """Duplicate of an existing resource."""
    status_code = 409
    code = "CONFLICT"
