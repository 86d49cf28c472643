"""테스트 인프라 — 임시 DB, 세션, httpx 클라이언트, 결제 게이트웨이 스텁 픽스처.

Test infrastructure — Throwaway database, session, httpx client, gateway stub
and billing orchestrator fixtures.
Each test gets a fresh SQLite file (``sqlite+aiosqlite``) unless
``TEST_DATABASE_URL`` points at another database; the schema is created from
ORM metadata before every test.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.api.deps import get_billing_orchestrator
from app.database import Base, get_db
from app.gateway.base import ChargeResult, ChargeStatus, PaymentLookup
from app.main import app
from app.models import *  # noqa: F401,F403 — register all models with metadata
from app.services.billing_service import BillingOrchestrator

# 청구 시나리오 기준 시각 — Reference timestamps used by billing scenarios
JAN_1: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)
FEB_1: datetime = datetime(2024, 2, 1, tzinfo=timezone.utc)
MAR_1: datetime = datetime(2024, 3, 1, tzinfo=timezone.utc)

RECURRING: str = "RECURRING"


# ---------------------------------------------------------------------------
# Function-scoped: 엔진, 세션, 클라이언트
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """테스트용 async 엔진. 매 테스트마다 스키마를 새로 만듭니다."""
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}"
    eng = create_async_engine(url, echo=False)

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """앱과 같은 설정의 세션 팩토리 (Session factory configured like the app's)."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """각 테스트에 격리된 DB 세션을 제공합니다."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def gateway() -> AsyncMock:
    """결제 게이트웨이 스텁. 기본 응답은 결제 성공입니다.

    Gateway stub whose ``charge`` succeeds and whose ``lookup`` finds nothing
    unless a test reconfigures them.
    """
    stub = AsyncMock()
    stub.charge.return_value = ChargeResult(
        status=ChargeStatus.SUCCESS,
        external_transaction_id="pg-tx-0001",
        receipt_url="https://receipt.example.com/pg-tx-0001",
        raw_body='{"payment":{"pgTxId":"pg-tx-0001","paidAt":"2024-02-01T00:00:00Z"}}',
    )
    stub.lookup.return_value = PaymentLookup(payment_id="unknown", status="NOT_FOUND")
    return stub


@pytest.fixture
def orchestrator(gateway: AsyncMock, session_factory: async_sessionmaker[AsyncSession]) -> BillingOrchestrator:
    """스텁 게이트웨이와 테스트 DB를 쓰는 오케스트레이터."""
    return BillingOrchestrator(
        gateway=gateway,
        session_factory=session_factory,
        max_workers=1,
        gateway_timeout=5,
        max_attempts=3,
        backoff_minutes=60,
        backoff_max_minutes=240,
    )


@pytest_asyncio.fixture
async def client(
    db: AsyncSession,
    orchestrator: BillingOrchestrator,
) -> AsyncGenerator[AsyncClient, None]:
    """FastAPI 테스트 클라이언트 — DB 세션과 오케스트레이터를 오버라이드합니다."""
    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    async def _override_orchestrator() -> BillingOrchestrator:
        return orchestrator

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_billing_orchestrator] = _override_orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# 헬퍼 픽스처: 테스트용 데이터 생성
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def member(db: AsyncSession):
    """테스트 회원을 생성합니다."""
    from app.models.member import Member
    m = Member(mid="dodam01", name="김도담", email="dodam01@example.com")
    db.add(m)
    await db.flush()
    await db.refresh(m)
    return m


@pytest_asyncio.fixture
async def other_member(db: AsyncSession):
    """두 번째 테스트 회원을 생성합니다."""
    from app.models.member import Member
    m = Member(mid="dodam02", name="이도담")
    db.add(m)
    await db.flush()
    await db.refresh(m)
    return m


@pytest_asyncio.fixture
async def plan(db: AsyncSession):
    """Standard 플랜과 1개월 RECURRING 9,900원 가격을 생성합니다."""
    from app.services.plan_service import plan_service
    p = await plan_service.create_plan(db, code="STANDARD", name="Standard")
    await plan_service.add_benefit(db, p.id, price_cap=Decimal("300000"), note="Standard 대여 혜택")
    await plan_service.create_price(db, p.id, term_months=1, billing_mode=RECURRING, amount=Decimal("9900"))
    return p


@pytest_asyncio.fixture
async def payment_method(db: AsyncSession, member):
    """회원의 빌링키 결제수단을 등록합니다."""
    from app.gateway.base import CardMeta
    from app.services.payment_method_service import payment_method_service
    return await payment_method_service.register_method(
        db,
        member.id,
        customer_ref="cust-dodam01",
        gateway_token="billing-key-0001",
        card_meta=CardMeta(brand="VISA", bin="411111", last4="1111", pg_provider="tosspayments"),
        raw_issue_response='{"billingKey":"billing-key-0001"}',
    )


@pytest_asyncio.fixture
async def membership(db: AsyncSession, member, plan):
    """2024-01-01 시작, 다음 청구 2024-02-01인 월 구독을 생성합니다."""
    from app.services.membership_service import membership_service
    return await membership_service.subscribe(
        db, member.id, plan.id, term_months=1, billing_mode=RECURRING, started_at=JAN_1
    )
