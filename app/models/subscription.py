"""구독/청구 관련 SQLAlchemy ORM 모델 정의.

Subscription and billing SQLAlchemy ORM model definitions.
A membership (plan_members) is billed once per cycle through an invoice;
every charge try against an invoice is appended to plan_attempts.

Tables:
    - plan_members: 플랜 구독 (Memberships with a next-billing cursor)
    - plan_invoices: 청구서 (One invoice per membership billing cycle)
    - plan_attempts: 결제 시도 기록 (Append-only charge attempt ledger)
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UTCDateTime, utcnow


class MembershipStatus:
    """구독 상태 값 (Membership status values)."""

    ACTIVE = "ACTIVE"  # 정상 구독 (Current)
    PAST_DUE = "PAST_DUE"  # 결제 실패 후 재시도 대기 (Unpaid invoice being retried)
    PAUSED = "PAUSED"  # 일시정지 — 청구 제외 (Paused, not billed)
    CANCELLED = "CANCELLED"  # 해지 — 종료 상태 (Terminal)

    # 청구 대상 상태 — Statuses picked up by the billing tick
    BILLABLE = (ACTIVE, PAST_DUE)


class InvoiceStatus:
    """청구서 상태 값 (Invoice status values)."""

    PENDING = "PENDING"  # 미결제 (Open, attempts may follow)
    PAID = "PAID"  # 결제 완료 (Settled)
    FAILED = "FAILED"  # 최대 시도 초과 (Given up after max attempts)


class AttemptResult:
    """결제 시도 결과 값 (Attempt result values)."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    PENDING = "PENDING"


class PlanMember(Base):
    """플랜 구독 모델 — 회원과 플랜의 구독 관계.

    Membership model — Binds a member to a plan subscription with a
    next-billing cursor. The stored plan/term/mode identify the price that
    each cycle is billed at.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        member_id: 회원 FK (Subscribed member)
        plan_id: 플랜 FK (Subscribed plan)
        term_months: 청구 주기 개월 수 (Billing term length in months)
        billing_mode: 결제 방식 (Billing mode label)
        payment_method_id: 선호 결제수단 FK (Preferred payment method, optional)
        status: 구독 상태 (ACTIVE | PAST_DUE | PAUSED | CANCELLED)
        started_at: 구독 시작 일시 (Subscription start)
        next_billing_at: 다음 청구 일시 (Next billing timestamp)
        cancelled_at: 해지 일시 (Cancellation timestamp)
        created_at: 생성 일시 UTC (Creation timestamp)
        updated_at: 수정 일시 UTC (Last update timestamp)

    Constraints:
        uq_plan_members_one_live: 회원당 해지되지 않은 구독은 하나
                                  (At most one non-cancelled membership per member)
    """

    __tablename__ = "plan_members"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("members.id"), nullable=False)
    plan_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("plans.id"), nullable=False)
    term_months: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    billing_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    # 선호 결제수단 — 없으면 회원의 최신 결제수단 사용 (Falls back to newest method)
    payment_method_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("plan_payments.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=MembershipStatus.ACTIVE)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    # 다음 청구 일시 — 결제 성공 시에만 term_months 만큼 전진 (Advances only on success)
    next_billing_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_plan_members_status_next_billing", "status", "next_billing_at"),
        Index(
            "uq_plan_members_one_live",
            "member_id",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )


class PlanInvoice(Base):
    """청구서 모델 — 한 청구 주기의 결제 의무.

    Invoice model — One billing cycle's charge obligation for a membership.
    Retries of the same cycle reuse the invoice; its ``uid`` doubles as the
    gateway idempotency key.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        uid: 외부 식별자 (External identifier, unique)
        membership_id: 구독 FK (Owning membership)
        period_start: 청구 기간 시작 (Cycle start = billed next-billing value)
        period_end: 청구 기간 종료 (Cycle end)
        amount: 청구 금액 (Amount resolved from the active price)
        currency: 통화 (Currency code)
        status: 청구 상태 (PENDING | PAID | FAILED)
        next_attempt_at: 다음 재시도 가능 일시 (Earliest retry time after a failure)
        paid_at: 결제 완료 일시 (Settlement timestamp)
        created_at: 생성 일시 UTC (Creation timestamp)

    Constraints:
        uq_plan_invoice_membership_period: 구독/기간 조합 고유 (One invoice per cycle)
    """

    __tablename__ = "plan_invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    uid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    membership_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("plan_members.id"), nullable=False, index=True)
    period_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=InvoiceStatus.PENDING)
    next_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("membership_id", "period_start", name="uq_plan_invoice_membership_period"),
    )


class PlanAttempt(Base):
    """결제 시도 모델 — 추가 전용 감사 기록.

    Attempt model — Append-only record of one charge try against an invoice.
    Rows are inserted once and never updated or deleted.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        invoice_id: 청구서 FK (Invoice the attempt charged)
        attempt_no: 청구서 내 순번 (1-based sequence within the invoice)
        attempted_at: 시도 일시 (Attempt timestamp)
        result: 결과 (SUCCESS | FAILURE | PENDING)
        failure_reason: 실패 사유 (Failure reason code, optional)
        external_attempt_id: 게이트웨이 거래 아이디 (Gateway transaction id)
        receipt_url: 영수증 URL (Receipt URL, optional)
        raw_response: 게이트웨이 응답 원문 (Raw gateway body, stored verbatim)
    """

    __tablename__ = "plan_attempts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("plan_invoices.id"), nullable=False, index=True)
    attempt_no: Mapped[int] = mapped_column(Integer, nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    result: Mapped[str] = mapped_column(String(20), nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    external_attempt_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    receipt_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # 응답 원문 — 파싱/축약 금지 (Never parsed or reduced; audit/dispute evidence)
    raw_response: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("invoice_id", "attempt_no", name="uq_plan_attempt_invoice_no"),
    )
