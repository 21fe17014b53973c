"""
Request scope for multi-tenant operations.

Every service call that reads or writes tenant data receives a `RequestScope`.
The HTTP layer builds it from the X-Tenant-ID / X-Company-ID / X-User-ID
headers; scripts and tests build it directly.
"""
import uuid
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RequestScope:
    """Tenant, company and acting user of one request."""
    tenant_id: uuid.UUID
    company_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
