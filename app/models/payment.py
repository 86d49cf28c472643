"""결제수단 SQLAlchemy ORM 모델 정의.

Payment method SQLAlchemy ORM model definitions.
Stores tokenized card instruments (billing keys) issued by the payment
gateway. Card numbers are never stored; only display metadata.

Tables:
    - plan_payments: 회원 결제수단 (Member payment methods / billing keys)
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UTCDateTime, utcnow


class PlanPayment(Base):
    """결제수단 모델 — 회원의 빌링키와 카드 메타정보.

    Payment method model — A member's billing key plus card display metadata.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        member_id: 회원 FK (Owning member)
        customer_ref: 게이트웨이 고객 아이디 (Gateway customer reference)
        gateway_token: 빌링키 (Gateway billing key, charged by the orchestrator)
        pg_provider: PG사 (PG provider, e.g. tosspayments, nice)
        card_brand: 카드 브랜드 (Card brand, e.g. VISA)
        card_bin: 카드 BIN (Card BIN)
        card_last4: 카드 끝 4자리 (Last four digits)
        raw_issue_response: 빌링키 발급 원문 (Raw issuance payload, opaque)
        is_active: 사용 여부 (Whether the method may be charged)
        created_at: 등록 일시 UTC (Registration timestamp)

    Constraints:
        uq_plan_payment_member_customer: 회원/고객아이디 조합 고유
                                         (One row per member/customer reference)
    """

    __tablename__ = "plan_payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    gateway_token: Mapped[str] = mapped_column(String(200), nullable=False)
    pg_provider: Mapped[str | None] = mapped_column(String(30), nullable=True)
    card_brand: Mapped[str | None] = mapped_column(String(40), nullable=True)
    card_bin: Mapped[str | None] = mapped_column(String(12), nullable=True)
    card_last4: Mapped[str | None] = mapped_column(String(8), nullable=True)
    # 발급 원문 — 해석하지 않고 그대로 보관 (Stored verbatim, never reinterpreted)
    raw_issue_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("member_id", "customer_ref", name="uq_plan_payment_member_customer"),
    )
