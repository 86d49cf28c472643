"""플랜 카탈로그 SQLAlchemy ORM 모델 정의.

Plan catalog SQLAlchemy ORM model definitions.
Reference data provisioned by administrators: plan names, plans, benefits,
billing terms and prices. Relationships are plain foreign-key columns and
are resolved through repositories, never through lazy-loaded object graphs.

Tables:
    - plan_names: 플랜 이름 (Plan display names)
    - plans: 플랜 (Plans, unique code)
    - plan_benefits: 플랜 혜택 (Per-plan benefit metadata)
    - plan_terms: 약정 기간 (Billing terms in months)
    - plan_prices: 플랜 가격 (Prices per plan/term/billing mode)
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UTCDateTime, utcnow


class BillingMode:
    """결제 방식 라벨 (Billing mode labels).

    Any label may be stored on a price; these are the ones the catalog
    uses by default when a subscriber does not name one.
    """

    MONTHLY = "MONTHLY"  # 1개월 정기결제 (Monthly recurring)
    PREPAID_TERM = "PREPAID_TERM"  # 약정 기간 선결제 (Prepaid for the whole term)

    @staticmethod
    def default_for(term_months: int) -> str:
        return BillingMode.MONTHLY if term_months == 1 else BillingMode.PREPAID_TERM


class PlanName(Base):
    """플랜 이름 모델.

    Plan name reference row, shared by plans that display the same name.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        name: 플랜 이름 (Plan display name, unique)
    """

    __tablename__ = "plan_names"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # 플랜 이름 — Plan display name (e.g. "Standard", "Premium")
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class Plan(Base):
    """플랜 모델 — 구독 가능한 상품 단위.

    Plan model — A subscribable product. Immutable once referenced by a
    membership, except for the active flag.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        plan_name_id: 플랜 이름 FK (Plan name foreign key)
        code: 플랜 코드 (Plan code, unique)
        is_active: 판매 여부 (Whether the plan is offered)
        created_at: 생성 일시 UTC (Creation timestamp)
    """

    __tablename__ = "plans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # 플랜 이름 FK — Plan name (이름 삭제 제한, name deletion is restricted)
    plan_name_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("plan_names.id"), nullable=False)
    # 플랜 코드 — Plan code (전역 고유, e.g. "STANDARD")
    code: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    # 판매 여부 — Active flag (비활성 플랜은 신규 구독 불가)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # 생성 일시 — Creation timestamp (UTC)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class PlanBenefit(Base):
    """플랜 혜택 모델.

    Plan benefit metadata. Deleted together with its plan; the service layer
    removes benefit rows explicitly before deleting the plan.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        plan_id: 플랜 FK (Owning plan)
        price_cap: 대여 상품 가격 상한 (Rental price cap, optional)
        note: 혜택 설명 (Descriptive note)
    """

    __tablename__ = "plan_benefits"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # 가격 상한 — Price cap for rentable items under this plan (nullable)
    price_cap: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)


class PlanTerm(Base):
    """약정 기간 모델.

    Billing term reference row. ``months`` is the period that the
    next-billing cursor advances by.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        months: 약정 개월 수 (Term length in months, unique)
    """

    __tablename__ = "plan_terms"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    months: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)


class PlanPrice(Base):
    """플랜 가격 모델.

    Price of a plan for one billing term and billing mode.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        plan_id: 플랜 FK (Plan foreign key)
        term_id: 약정 FK (Billing term foreign key)
        billing_mode: 결제 방식 (Billing mode label, e.g. MONTHLY)
        amount: 금액 (Charge amount)
        currency: 통화 (ISO 4217 currency code)
        is_active: 활성 여부 (Whether the price can be billed)
        created_at: 생성 일시 UTC (Creation timestamp)

    Constraints:
        uq_plan_price_plan_term_mode: 플랜/약정/결제방식 조합 고유
                                      (One row per plan/term/mode)
    """

    __tablename__ = "plan_prices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("plans.id"), nullable=False)
    term_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("plan_terms.id"), nullable=False)
    billing_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KRW")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("plan_id", "term_id", "billing_mode", name="uq_plan_price_plan_term_mode"),
    )
