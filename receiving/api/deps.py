from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from receiving.core.exceptions import ValidationError
from receiving.core.scope import RequestScope
from receiving.database import get_db


logger = logging.getLogger(__name__)


def _parse_header_uuid(value: Optional[str], header: str, required: bool = True) -> Optional[uuid.UUID]:
    if not value:
        if required:
            raise ValidationError(f"{header} header is required")
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        logger.warning(f"Invalid {header} header: {value}")
        raise ValidationError(f"invalid {header} header")


async def get_request_scope(
    request: Request,
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
    x_company_id: Optional[str] = Header(None, alias="X-Company-ID"),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> RequestScope:
    """
    Dependency building the tenant/company/user scope of a request.

    X-Tenant-ID and X-Company-ID are required, X-User-ID is optional.
    """
    return RequestScope(
        tenant_id=_parse_header_uuid(x_tenant_id, "X-Tenant-ID"),
        company_id=_parse_header_uuid(x_company_id, "X-Company-ID"),
        user_id=_parse_header_uuid(x_user_id, "X-User-ID", required=False),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
Scope = Annotated[RequestScope, Depends(get_request_scope)]
