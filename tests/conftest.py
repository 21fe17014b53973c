"""
Pytest configuration and shared fixtures for the receiving test suite.

Every test gets a fresh in-memory SQLite database. Service tests use the
`db` session directly; API tests go through `client`, whose requests share
the same engine so data seeded in `db` is visible to the endpoints.
"""
import uuid
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from receiving import models
from receiving.core.scope import RequestScope
from receiving.database import Base, configure_sqlite_transactions, custom_json_dumps, get_db
from receiving.models.purchase import PurchaseOrderStatus


@pytest.fixture
async def engine():
    """In-memory database with all tables created."""
    test_engine = configure_sqlite_transactions(create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=custom_json_dumps,
    ))
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


class World:
    """Ids of the company, supplier and warehouse every test works in."""

    def __init__(self, company: models.Company, supplier: models.Supplier, warehouse: models.Warehouse):
        self.tenant_id = company.tenant_id
        self.company_id = company.id
        self.supplier_id = supplier.id
        self.warehouse_id = warehouse.id
        self.user_id = uuid.uuid4()
        self.scope = RequestScope(
            tenant_id=self.tenant_id,
            company_id=self.company_id,
            user_id=self.user_id,
        )
        self._po_counter = 0
        self._product_counter = 0

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-Tenant-ID": str(self.tenant_id),
            "X-Company-ID": str(self.company_id),
            "X-User-ID": str(self.user_id),
        }


@pytest.fixture
async def world(db: AsyncSession) -> World:
    """Seed one company with a supplier and a warehouse."""
    tenant_id = uuid.uuid4()
    company = models.Company(tenant_id=tenant_id, code="ACME", name="Acme Trading")
    db.add(company)
    await db.flush()

    supplier = models.Supplier(tenant_id=tenant_id, company_id=company.id, code="SUP-001", name="Global Supplies")
    warehouse = models.Warehouse(tenant_id=tenant_id, company_id=company.id, code="WH-MAIN", name="Main Warehouse")
    db.add_all([supplier, warehouse])
    await db.commit()
    return World(company, supplier, warehouse)


async def create_product(
    db: AsyncSession,
    world: World,
    name: Optional[str] = None,
    category: Optional[str] = None,
    is_batch_tracked: bool = False,
    is_perishable: bool = False,
) -> models.Product:
    world._product_counter += 1
    product = models.Product(
        tenant_id=world.tenant_id,
        company_id=world.company_id,
        code=f"P-{world._product_counter:03d}",
        name=name or f"Product {world._product_counter}",
        category=category,
        is_batch_tracked=is_batch_tracked,
        is_perishable=is_perishable,
    )
    db.add(product)
    await db.commit()
    return product


async def create_purchase_order(
    db: AsyncSession,
    world: World,
    lines: List[tuple],
    status: PurchaseOrderStatus = PurchaseOrderStatus.CONFIRMED,
) -> models.PurchaseOrder:
    """
    Create a purchase order; `lines` holds (product, quantity) pairs.

    The returned order has its items in line order.
    """
    world._po_counter += 1
    po = models.PurchaseOrder(
        tenant_id=world.tenant_id,
        company_id=world.company_id,
        po_number=f"PO-2026-{world._po_counter:04d}",
        po_date=date(2026, 10, 1),
        status=status.value,
        supplier_id=world.supplier_id,
        warehouse_id=world.warehouse_id,
        items=[
            models.PurchaseOrderItem(
                product_id=product.id,
                line_number=index,
                quantity=Decimal(str(quantity)),
                received_qty=Decimal("0"),
                unit_price=Decimal("10.00"),
            )
            for index, (product, quantity) in enumerate(lines, start=1)
        ],
    )
    db.add(po)
    await db.commit()
    return po


@pytest.fixture
async def client(engine, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, with get_db bound to the test engine."""
    from receiving.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
