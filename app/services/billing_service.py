"""정기결제 오케스트레이터 — 청구 주기 상태 머신.

Billing Orchestrator — Drives one billing tick: selects due memberships,
opens (or reuses) the cycle's invoice, charges the member's billing key,
appends the attempt to the ledger, then advances the membership on success
or applies the dunning policy on failure.

Each membership is processed in its own session and transaction while its
row is locked (``SELECT ... FOR UPDATE``) and an in-process lock is held, so
no two ticks bill the same membership at once and one membership's failure
never rolls back another's progress.

Dunning:
    - 실패 시 next_billing_at 유지, 구독은 PAST_DUE, 청구서는 PENDING
      (On failure the cursor stays, membership goes PAST_DUE, invoice stays open)
    - 재시도 대기 = base * 2^(실패횟수-1), 상한 적용
      (Retry backoff = base * 2^(failures-1), capped)
    - 실패 횟수가 max_attempts에 도달하면 청구서 FAILED, 구독 자동 해지
      (Reaching max_attempts fails the invoice and cancels the membership)
"""

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import async_session, ensure_utc, utcnow
from app.gateway.base import (
    IN_PROGRESS_STATUSES,
    PAID_STATUSES,
    ChargeResult,
    ChargeStatus,
    GatewayError,
    PaymentGateway,
)
from app.gateway.portone import PortOneGateway
from app.models.notification import NotificationType
from app.models.payment import PlanPayment
from app.models.plan import PlanPrice
from app.models.subscription import AttemptResult, InvoiceStatus, MembershipStatus, PlanInvoice, PlanMember
from app.repositories.attempt_repository import attempt_repository
from app.repositories.invoice_repository import invoice_repository
from app.repositories.plan_member_repository import plan_member_repository
from app.services.attempt_service import attempt_service
from app.services.member_service import member_service
from app.services.membership_service import membership_service
from app.services.notification_service import notification_service
from app.services.payment_method_service import payment_method_service
from app.services.plan_service import plan_service
from app.utils.dates import cycle_end
from app.utils.exceptions import PriceNotFoundError

logger = logging.getLogger(__name__)

# 실패 사유 코드 — Failure reason codes recorded by the orchestrator itself
NO_PAYMENT_METHOD = "NO_PAYMENT_METHOD"
GATEWAY_TIMEOUT = "GATEWAY_TIMEOUT"


class BillingOutcome:
    """구독 1건 처리 결과 (Per-membership outcome of a tick)."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


@dataclass
class TickSummary:
    """청구 틱 실행 요약 (Counts of one tick's outcomes)."""

    as_of: datetime
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0

    def add(self, outcome: str) -> None:
        self.processed += 1
        if outcome == BillingOutcome.SUCCEEDED:
            self.succeeded += 1
        elif outcome == BillingOutcome.FAILED:
            self.failed += 1
        elif outcome == BillingOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1


class EventOutcome:
    """게이트웨이 결제 통지 처리 결과 (Outcome of applying a gateway payment event)."""

    IGNORED = "IGNORED"  # 알 수 없는 결제 아이디 (No invoice for the payment id)
    DUPLICATE = "DUPLICATE"  # 이미 기록된 거래 (Transaction already in the ledger)
    SETTLED = "SETTLED"  # 청구서 결제 완료 처리 (Invoice settled)
    RECORDED = "RECORDED"  # 시도만 기록 (Attempt recorded, invoice unchanged)


@dataclass
class PaymentEvent:
    """게이트웨이가 보낸 결제 통지.

    Payment notification pushed by the gateway (webhook).

    Attributes:
        payment_id: 결제 아이디, 청구서 uid (Payment id, the invoice uid)
        status: 게이트웨이 결제 상태 (Gateway payment status, e.g. PAID, FAILED)
        transaction_id: PG 거래 아이디 (PG transaction id)
        receipt_url: 영수증 URL (Receipt URL)
        failure_reason: 실패 사유 (Failure reason)
        raw_body: 통지 원문 (Raw notification body, verbatim)
    """

    payment_id: str
    status: str
    transaction_id: str | None = None
    receipt_url: str | None = None
    failure_reason: str | None = None
    raw_body: str | None = None


@dataclass
class _PaymentNotice:
    """커밋 후 보낼 결제 알림 (Payment notification queued until commit)."""

    member_id: UUID
    succeeded: bool
    amount: str
    currency: str
    reason: str | None = None


class BillingOrchestrator:
    """정기결제 오케스트레이터.

    Recurring billing orchestrator.

    Args:
        gateway: 결제 게이트웨이 어댑터 (Payment gateway adapter)
        session_factory: 세션 팩토리, 구독별 트랜잭션에 사용
                         (Session factory; one session per membership)
        max_workers: 틱당 동시 처리 구독 수 (Memberships processed concurrently)
        gateway_timeout: 게이트웨이 호출 타임아웃 초 (Gateway call timeout, seconds)
        max_attempts: 청구서당 최대 실패 횟수 (Failed attempts before auto-cancel)
        backoff_minutes: 재시도 기본 대기 분 (Base retry backoff, minutes)
        backoff_max_minutes: 재시도 최대 대기 분 (Backoff cap, minutes)
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        max_workers: int | None = None,
        gateway_timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_minutes: int | None = None,
        backoff_max_minutes: int | None = None,
    ) -> None:
        self.gateway: PaymentGateway = gateway
        self.session_factory: async_sessionmaker[AsyncSession] = session_factory or async_session
        self.max_workers: int = max(1, max_workers or settings.BILLING_MAX_WORKERS)
        self.gateway_timeout: float = gateway_timeout or settings.BILLING_GATEWAY_TIMEOUT_SECONDS
        self.max_attempts: int = max(1, max_attempts or settings.BILLING_MAX_ATTEMPTS)
        self.backoff_minutes: int = (
            settings.BILLING_RETRY_BACKOFF_MINUTES if backoff_minutes is None else backoff_minutes
        )
        self.backoff_max_minutes: int = (
            settings.BILLING_RETRY_BACKOFF_MAX_MINUTES if backoff_max_minutes is None else backoff_max_minutes
        )
        # 구독별 프로세스 내 잠금 — Per-membership in-process locks, dropped when unused
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = weakref.WeakValueDictionary()
        self._pending_notifications: set[asyncio.Task] = set()

    # --- 틱 실행 (Tick entry point) ---

    async def run_tick(self, as_of: datetime | None = None) -> TickSummary:
        """청구 틱을 1회 실행합니다.

        Run one billing tick over every membership due at ``as_of``.

        Args:
            as_of: 기준 시각, 생략 시 현재 (Cut-off timestamp, defaults to now)

        Returns:
            TickSummary: 처리 결과 요약 (Outcome counts)
        """
        cutoff: datetime = ensure_utc(as_of) if as_of else utcnow()
        summary: TickSummary = TickSummary(as_of=cutoff)

        async with self.session_factory() as db:
            due: list[PlanMember] = list(await membership_service.due_for_billing(db, cutoff))
            membership_ids: list[UUID] = [m.id for m in due]

        logger.info(
            "Billing tick started",
            extra={"as_of": cutoff.isoformat(), "due_count": len(membership_ids)},
        )

        semaphore: asyncio.Semaphore = asyncio.Semaphore(self.max_workers)

        async def _worker(membership_id: UUID) -> tuple[str, _PaymentNotice | None]:
            async with semaphore:
                return await self._process(membership_id, cutoff)

        results = await asyncio.gather(
            *(_worker(mid) for mid in membership_ids),
            return_exceptions=True,
        )
        for membership_id, result in zip(membership_ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Billing failed unexpectedly",
                    exc_info=result,
                    extra={"membership_id": str(membership_id)},
                )
                summary.add(BillingOutcome.ERROR)
                continue
            outcome, notice = result
            summary.add(outcome)
            # 알림은 청구가 모두 끝난 뒤 전송 — Notifications go out once billing writes are done
            if notice is not None:
                self._dispatch_notification(notice)

        await self.drain_notifications()
        logger.info(
            "Billing tick finished",
            extra={
                "as_of": cutoff.isoformat(),
                "processed": summary.processed,
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "skipped": summary.skipped,
                "errors": summary.errors,
            },
        )
        return summary

    def _lock_for(self, membership_id: UUID) -> asyncio.Lock:
        lock: asyncio.Lock | None = self._locks.get(membership_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[membership_id] = lock
        return lock

    async def process_membership(self, membership_id: UUID, as_of: datetime) -> str:
        """구독 1건을 자체 트랜잭션에서 청구합니다.

        Bill one membership inside its own transaction. Persistence errors
        roll back this membership only; its cursor was never advanced, so
        the next tick retries it.

        Returns:
            str: BillingOutcome 값 (BillingOutcome value)
        """
        outcome, notice = await self._process(membership_id, as_of)
        if notice is not None:
            self._dispatch_notification(notice)
        await self.drain_notifications()
        return outcome

    async def _process(
        self,
        membership_id: UUID,
        as_of: datetime,
    ) -> tuple[str, _PaymentNotice | None]:
        lock: asyncio.Lock = self._lock_for(membership_id)
        async with lock:
            async with self.session_factory() as db:
                try:
                    outcome, notice = await self._bill(db, membership_id, ensure_utc(as_of))
                    await db.commit()
                except PriceNotFoundError:
                    await db.rollback()
                    logger.warning(
                        "No active price for membership, skipped",
                        extra={"membership_id": str(membership_id)},
                    )
                    return BillingOutcome.SKIPPED, None
                except SQLAlchemyError:
                    await db.rollback()
                    logger.exception(
                        "Persistence error while billing membership",
                        extra={"membership_id": str(membership_id)},
                    )
                    return BillingOutcome.ERROR, None
        return outcome, notice

    # --- 상태 머신 (State machine) ---

    async def _bill(
        self,
        db: AsyncSession,
        membership_id: UUID,
        as_of: datetime,
    ) -> tuple[str, _PaymentNotice | None]:
        # 행 잠금 후 재확인 — Re-check under the row lock
        membership: PlanMember | None = await plan_member_repository.lock_by_id(db, membership_id)
        if (
            membership is None
            or membership.status not in MembershipStatus.BILLABLE
            or membership.next_billing_at > as_of
        ):
            return BillingOutcome.SKIPPED, None

        invoice: PlanInvoice | None = await self._open_invoice(db, membership, as_of)
        if invoice is None:
            return BillingOutcome.SKIPPED, None

        method: PlanPayment | None = await payment_method_service.get_billable_method(
            db, membership.member_id, membership.payment_method_id
        )
        if method is None:
            charge: ChargeResult = ChargeResult(status=ChargeStatus.FAILURE, error_message=NO_PAYMENT_METHOD)
        else:
            charge = await self._charge(method, invoice)

        await attempt_service.record_attempt(
            db,
            invoice_id=invoice.id,
            result=AttemptResult.SUCCESS if charge.succeeded else AttemptResult.FAILURE,
            reason=None if charge.succeeded else charge.error_message,
            external_attempt_id=charge.external_transaction_id,
            receipt_url=charge.receipt_url,
            raw_response=charge.raw_body,
        )

        log_extra: dict = {
            "membership_id": str(membership.id),
            "invoice_uid": invoice.uid,
            "result": charge.status,
            "reason": charge.error_message,
        }
        notice: _PaymentNotice = _PaymentNotice(
            member_id=membership.member_id,
            succeeded=charge.succeeded,
            amount=f"{invoice.amount:,.0f}",
            currency=invoice.currency,
            reason=charge.error_message,
        )

        if charge.succeeded:
            await self._settle(db, membership, invoice, method, charge)
            await db.flush()
            logger.info("Billing succeeded", extra=log_extra)
            return BillingOutcome.SUCCEEDED, notice

        await self._apply_dunning(db, membership, invoice, as_of)
        await db.flush()
        logger.warning("Billing failed", extra=log_extra)
        return BillingOutcome.FAILED, notice

    async def _open_invoice(
        self,
        db: AsyncSession,
        membership: PlanMember,
        as_of: datetime,
    ) -> PlanInvoice | None:
        """현재 주기의 청구서를 재사용하거나 새로 만듭니다.

        Reuse the current cycle's open invoice or create it. Returns None
        when the open invoice is still inside its retry backoff, or when the
        cycle's invoice is already closed.
        """
        invoice: PlanInvoice | None = await invoice_repository.get_by_period(
            db, membership.id, membership.next_billing_at
        )
        if invoice is not None:
            if invoice.status != InvoiceStatus.PENDING:
                return None
            if invoice.next_attempt_at is not None and invoice.next_attempt_at > as_of:
                return None
            return invoice

        price: PlanPrice = await plan_service.resolve_price(
            db, membership.plan_id, membership.term_months, membership.billing_mode
        )
        return await invoice_repository.create(
            db,
            {
                "uid": uuid.uuid4().hex,
                "membership_id": membership.id,
                "period_start": membership.next_billing_at,
                "period_end": cycle_end(membership.started_at, membership.next_billing_at, membership.term_months),
                "amount": price.amount,
                "currency": price.currency,
                "status": InvoiceStatus.PENDING,
            },
        )

    async def _charge(self, method: PlanPayment, invoice: PlanInvoice) -> ChargeResult:
        """게이트웨이를 타임아웃과 함께 호출합니다. 예외는 실패 결과로 바뀝니다.

        Call the gateway under a timeout; timeouts and gateway errors become
        FAILURE results instead of propagating.
        """
        try:
            return await asyncio.wait_for(
                self.gateway.charge(
                    method.gateway_token,
                    invoice.amount,
                    invoice.currency,
                    idempotency_key=invoice.uid,
                ),
                timeout=self.gateway_timeout,
            )
        except asyncio.TimeoutError:
            return ChargeResult(
                status=ChargeStatus.FAILURE,
                external_transaction_id=invoice.uid,
                error_message=GATEWAY_TIMEOUT,
            )
        except GatewayError as exc:
            return ChargeResult(
                status=ChargeStatus.FAILURE,
                external_transaction_id=invoice.uid,
                error_message=exc.reason,
                raw_body=exc.raw_body,
            )

    async def _settle(
        self,
        db: AsyncSession,
        membership: PlanMember,
        invoice: PlanInvoice,
        method: PlanPayment | None,
        charge: ChargeResult,
    ) -> None:
        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = utcnow()
        invoice.next_attempt_at = None
        # 커서가 이 청구서 주기에 있을 때만 전진 — Advance only from this invoice's cycle
        if membership.status != MembershipStatus.CANCELLED and membership.next_billing_at == invoice.period_start:
            membership.next_billing_at = invoice.period_end
            membership.status = MembershipStatus.ACTIVE
        if method is not None and not charge.card.is_empty():
            await payment_method_service.update_card_meta(db, method, charge.card)

    async def _apply_dunning(
        self,
        db: AsyncSession,
        membership: PlanMember,
        invoice: PlanInvoice,
        as_of: datetime,
    ) -> None:
        failures: int = await attempt_service.count_failures(db, invoice.id)
        if failures >= self.max_attempts:
            invoice.status = InvoiceStatus.FAILED
            invoice.next_attempt_at = None
            membership.status = MembershipStatus.CANCELLED
            membership.cancelled_at = utcnow()
            logger.warning(
                "Membership cancelled after repeated billing failures",
                extra={"membership_id": str(membership.id), "invoice_uid": invoice.uid, "failures": failures},
            )
            return

        invoice.next_attempt_at = as_of + self.retry_backoff(failures)
        membership.status = MembershipStatus.PAST_DUE

    def retry_backoff(self, failures: int) -> timedelta:
        """실패 횟수에 따른 재시도 대기 시간 (Retry delay after ``failures`` failures)."""
        minutes: int = self.backoff_minutes * 2 ** max(0, failures - 1)
        return timedelta(minutes=min(minutes, self.backoff_max_minutes))

    # --- 게이트웨이 통지 (Gateway payment events) ---

    async def apply_payment_event(self, db: AsyncSession, event: PaymentEvent) -> str:
        """게이트웨이 결제 통지를 청구서에 반영하고 커밋합니다.

        Apply a gateway payment event to the invoice whose uid is the event's
        payment id, then commit. The event is appended to the attempt ledger;
        a paid event settles a still-open invoice and advances the membership
        when its cursor sits on that invoice's cycle. Failure events are
        recorded only; retries and dunning stay with the billing tick.
        A transaction id already recorded with the same result is ignored, so
        redelivered events and events for charges the tick already recorded
        change nothing.

        Returns:
            str: EventOutcome 값 (EventOutcome value)
        """
        invoice: PlanInvoice | None = await invoice_repository.get_by_uid(db, event.payment_id)
        if invoice is None:
            logger.info("Payment event for unknown invoice ignored", extra={"payment_id": event.payment_id})
            return EventOutcome.IGNORED

        status: str = (event.status or "").strip().upper()
        if status in PAID_STATUSES:
            result: str = AttemptResult.SUCCESS
        elif status in IN_PROGRESS_STATUSES:
            result = AttemptResult.PENDING
        else:
            result = AttemptResult.FAILURE

        notice: _PaymentNotice | None = None
        async with self._lock_for(invoice.membership_id):
            membership: PlanMember | None = await plan_member_repository.lock_by_id(db, invoice.membership_id)
            invoice = await invoice_repository.lock_by_id(db, invoice.id)
            if event.transaction_id and await attempt_repository.exists(
                db,
                {"invoice_id": invoice.id, "external_attempt_id": event.transaction_id, "result": result},
            ):
                return EventOutcome.DUPLICATE

            await attempt_service.record_attempt(
                db,
                invoice_id=invoice.id,
                result=result,
                reason=None if result == AttemptResult.SUCCESS else (event.failure_reason or status or None),
                external_attempt_id=event.transaction_id,
                receipt_url=event.receipt_url,
                raw_response=event.raw_body,
            )

            outcome: str = EventOutcome.RECORDED
            if result == AttemptResult.SUCCESS and invoice.status != InvoiceStatus.PAID:
                await self._settle(db, membership, invoice, None, ChargeResult(status=ChargeStatus.SUCCESS))
                outcome = EventOutcome.SETTLED
                notice = _PaymentNotice(
                    member_id=membership.member_id,
                    succeeded=True,
                    amount=f"{invoice.amount:,.0f}",
                    currency=invoice.currency,
                )
            await db.commit()

        logger.info(
            "Payment event applied",
            extra={"payment_id": event.payment_id, "status": status, "outcome": outcome},
        )
        if notice is not None:
            self._dispatch_notification(notice)
            await self.drain_notifications()
        return outcome

    # --- 알림 (Notifications) ---

    def _dispatch_notification(self, notice: _PaymentNotice) -> None:
        task: asyncio.Task = asyncio.create_task(self._send_notification(notice))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _send_notification(self, notice: _PaymentNotice) -> None:
        """결제 결과 알림을 보냅니다. 실패해도 재시도하지 않습니다.

        Deliver a payment notification. Delivery failures are logged and
        never retried.
        """
        try:
            async with self.session_factory() as db:
                member = await member_service.get_member(db, notice.member_id)
                if notice.succeeded:
                    await notification_service.notify(
                        db,
                        member_id=member.id,
                        notification_type=NotificationType.INFO,
                        title="정기결제 완료",
                        content=f"{member.name}님, {notice.amount} {notice.currency} 결제가 완료되었습니다.",
                    )
                else:
                    await notification_service.notify(
                        db,
                        member_id=member.id,
                        notification_type=NotificationType.WARNING,
                        title="정기결제 실패",
                        content=(
                            f"{member.name}님, {notice.amount} {notice.currency} 결제에 실패했습니다. "
                            f"({notice.reason}) 결제수단을 확인해 주세요."
                        ),
                    )
                await db.commit()
        except Exception:
            logger.exception("Payment notification not delivered", extra={"member_id": str(notice.member_id)})

    async def drain_notifications(self) -> None:
        """대기 중인 알림 전송을 모두 기다립니다 (Wait for in-flight notifications)."""
        if self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications), return_exceptions=True)


# 싱글턴 인스턴스 — Singleton instance (PortOne gateway, application session factory)
billing_orchestrator: BillingOrchestrator = BillingOrchestrator(gateway=PortOneGateway())
