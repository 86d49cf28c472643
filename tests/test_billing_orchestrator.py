"""정기결제 오케스트레이터 테스트.

Billing orchestrator tests — Charge success/failure transitions, missing
payment methods, idempotent ticks, raw body preservation, gateway timeouts,
per-membership isolation and the dunning policy.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.gateway.base import CardMeta, ChargeResult, ChargeStatus, GatewayError
from app.gateway.portone import PortOneGateway
from app.models.subscription import (
    AttemptResult,
    InvoiceStatus,
    MembershipStatus,
    PlanAttempt,
    PlanInvoice,
)
from app.services.attempt_service import attempt_service
from app.services.billing_service import (
    GATEWAY_TIMEOUT,
    NO_PAYMENT_METHOD,
    BillingOrchestrator,
    BillingOutcome,
)
from app.services.membership_service import membership_service
from app.services.notification_service import notification_service
from app.services.payment_method_service import payment_method_service
from app.services.plan_service import plan_service
from tests.conftest import FEB_1, JAN_1, MAR_1, RECURRING


def declined(raw_body: str = '{"type":"CARD_DECLINED","message":"카드 한도 초과"}') -> ChargeResult:
    return ChargeResult(
        status=ChargeStatus.FAILURE,
        external_transaction_id="pg-tx-declined",
        error_message="CARD_DECLINED",
        raw_body=raw_body,
    )


async def invoices_of(db: AsyncSession, membership_id) -> list[PlanInvoice]:
    result = await db.execute(select(PlanInvoice).where(PlanInvoice.membership_id == membership_id))
    return list(result.scalars().all())


async def attempts_of(db: AsyncSession, invoice_id) -> list[PlanAttempt]:
    result = await db.execute(
        select(PlanAttempt).where(PlanAttempt.invoice_id == invoice_id).order_by(PlanAttempt.attempt_no)
    )
    return list(result.scalars().all())


class TestChargeSuccess:
    """결제 성공 테스트."""

    async def test_success_advances_next_billing(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """성공 시 청구서 1건, 시도 1건, 다음 청구일 2024-03-01."""
        await db.commit()

        summary = await orchestrator.run_tick(FEB_1)

        assert summary.processed == 1
        assert summary.succeeded == 1
        await db.refresh(membership)
        assert membership.next_billing_at == MAR_1
        assert membership.status == MembershipStatus.ACTIVE

        invoices = await invoices_of(db, membership.id)
        assert len(invoices) == 1
        invoice = invoices[0]
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.period_start == FEB_1
        assert invoice.period_end == MAR_1
        assert invoice.amount == Decimal("9900")
        assert invoice.currency == "KRW"
        assert invoice.paid_at is not None

        attempts = await attempts_of(db, invoice.id)
        assert len(attempts) == 1
        assert attempts[0].result == AttemptResult.SUCCESS
        assert attempts[0].failure_reason is None
        assert attempts[0].external_attempt_id == "pg-tx-0001"
        assert attempts[0].receipt_url == "https://receipt.example.com/pg-tx-0001"

    async def test_invoice_uid_is_idempotency_key(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """게이트웨이에 빌링키, 금액, 통화, 청구서 uid를 전달."""
        await db.commit()

        await orchestrator.run_tick(FEB_1)

        invoice = (await invoices_of(db, membership.id))[0]
        gateway.charge.assert_awaited_once_with(
            "billing-key-0001", Decimal("9900"), "KRW", idempotency_key=invoice.uid
        )

    async def test_success_refreshes_card_meta(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """게이트웨이가 돌려준 카드 정보로 결제수단 표시 정보 갱신."""
        gateway.charge.return_value = ChargeResult(
            status=ChargeStatus.SUCCESS,
            external_transaction_id="pg-tx-0002",
            raw_body="{}",
            card=CardMeta(brand="MASTER", last4="5555"),
        )
        await db.commit()

        await orchestrator.run_tick(FEB_1)

        await db.refresh(payment_method)
        assert payment_method.card_brand == "MASTER"
        assert payment_method.card_last4 == "5555"
        # 보고되지 않은 필드는 유지 — Unreported fields keep their values
        assert payment_method.card_bin == "411111"
        assert payment_method.raw_issue_response == '{"billingKey":"billing-key-0001"}'

    async def test_not_due_membership_is_not_billed(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """청구일 이전 틱은 아무 것도 하지 않음."""
        await db.commit()

        summary = await orchestrator.run_tick(FEB_1 - timedelta(seconds=1))

        assert summary.processed == 0
        gateway.charge.assert_not_awaited()
        assert await invoices_of(db, membership.id) == []


class TestChargeFailure:
    """결제 실패 테스트."""

    async def test_declined_keeps_next_billing(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """CARD_DECLINED 시 다음 청구일 유지, 시도 1건 FAILURE."""
        gateway.charge.return_value = declined()
        await db.commit()

        summary = await orchestrator.run_tick(FEB_1)

        assert summary.failed == 1
        await db.refresh(membership)
        assert membership.next_billing_at == FEB_1
        assert membership.status == MembershipStatus.PAST_DUE

        invoices = await invoices_of(db, membership.id)
        assert len(invoices) == 1
        assert invoices[0].status == InvoiceStatus.PENDING
        assert invoices[0].next_attempt_at == FEB_1 + timedelta(minutes=60)

        attempts = await attempts_of(db, invoices[0].id)
        assert len(attempts) == 1
        assert attempts[0].result == AttemptResult.FAILURE
        assert attempts[0].failure_reason == "CARD_DECLINED"

    async def test_no_payment_method_skips_gateway(
        self, db: AsyncSession, orchestrator, gateway, membership
    ):
        """결제수단 없으면 게이트웨이 호출 없이 NO_PAYMENT_METHOD 실패."""
        await db.commit()

        summary = await orchestrator.run_tick(FEB_1)

        assert summary.failed == 1
        gateway.charge.assert_not_awaited()
        invoices = await invoices_of(db, membership.id)
        assert len(invoices) == 1
        attempts = await attempts_of(db, invoices[0].id)
        assert len(attempts) == 1
        assert attempts[0].result == AttemptResult.FAILURE
        assert attempts[0].failure_reason == NO_PAYMENT_METHOD

    async def test_deactivated_method_counts_as_missing(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """비활성화된 결제수단은 청구에 사용하지 않음."""
        await payment_method_service.deactivate_method(db, payment_method.id)
        await db.commit()

        await orchestrator.run_tick(FEB_1)

        gateway.charge.assert_not_awaited()
        invoice = (await invoices_of(db, membership.id))[0]
        assert (await attempts_of(db, invoice.id))[0].failure_reason == NO_PAYMENT_METHOD

    async def test_gateway_timeout_is_recorded_as_failure(
        self, db: AsyncSession, session_factory, gateway, membership, payment_method
    ):
        """타임아웃은 GATEWAY_TIMEOUT 실패로 기록되고 틱은 계속됨."""
        async def _hang(*args, **kwargs):
            await asyncio.sleep(5)

        gateway.charge.side_effect = _hang
        orchestrator = BillingOrchestrator(
            gateway=gateway, session_factory=session_factory, max_workers=1, gateway_timeout=0.05
        )
        await db.commit()

        summary = await orchestrator.run_tick(FEB_1)

        assert summary.failed == 1
        invoice = (await invoices_of(db, membership.id))[0]
        attempts = await attempts_of(db, invoice.id)
        assert attempts[0].failure_reason == GATEWAY_TIMEOUT
        assert attempts[0].external_attempt_id == invoice.uid
        await db.refresh(membership)
        assert membership.next_billing_at == FEB_1

    async def test_gateway_error_is_recorded_as_failure(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """게이트웨이 예외는 사유 코드와 원문을 남기는 실패로 기록."""
        gateway.charge.side_effect = GatewayError("MALFORMED_RESPONSE", raw_body="<html>502</html>")
        await db.commit()

        await orchestrator.run_tick(FEB_1)

        invoice = (await invoices_of(db, membership.id))[0]
        attempt = (await attempts_of(db, invoice.id))[0]
        assert attempt.failure_reason == "MALFORMED_RESPONSE"
        assert attempt.raw_response == "<html>502</html>"


class TestRawResponse:
    """응답 원문 보존 테스트."""

    async def test_raw_body_is_stored_verbatim(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """원문은 공백/순서/한글 포함 그대로 저장되어야 함."""
        raw = '{ "type" : "CARD_DECLINED",\n  "message": "잔액 부족",  "extra": [1, 2.50, null] }\r\n'
        gateway.charge.return_value = declined(raw_body=raw)
        await db.commit()

        await orchestrator.run_tick(FEB_1)

        invoice = (await invoices_of(db, membership.id))[0]
        history = await attempt_service.history(db, invoice.id)
        assert history[0].raw_response == raw


class TestIdempotentTicks:
    """중복 틱 테스트."""

    async def test_second_tick_after_success_does_nothing(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """같은 시각 두 번째 틱은 청구하지 않음."""
        await db.commit()

        await orchestrator.run_tick(FEB_1)
        summary = await orchestrator.run_tick(FEB_1)

        assert summary.processed == 0
        assert gateway.charge.await_count == 1
        assert len(await invoices_of(db, membership.id)) == 1

    async def test_second_tick_inside_backoff_is_skipped(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """재시도 대기 중 틱은 새 청구서/시도를 만들지 않음."""
        gateway.charge.return_value = declined()
        await db.commit()

        await orchestrator.run_tick(FEB_1)
        summary = await orchestrator.run_tick(FEB_1 + timedelta(minutes=10))

        assert summary.skipped == 1
        assert gateway.charge.await_count == 1
        invoices = await invoices_of(db, membership.id)
        assert len(invoices) == 1
        assert len(await attempts_of(db, invoices[0].id)) == 1

    async def test_retry_reuses_open_invoice(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """재시도는 같은 청구서에 시도를 추가하고 같은 멱등 키를 사용."""
        gateway.charge.return_value = declined()
        await db.commit()

        await orchestrator.run_tick(FEB_1)
        gateway.charge.return_value = ChargeResult(status=ChargeStatus.SUCCESS, raw_body="{}")
        summary = await orchestrator.run_tick(FEB_1 + timedelta(hours=1))

        assert summary.succeeded == 1
        invoices = await invoices_of(db, membership.id)
        assert len(invoices) == 1
        attempts = await attempts_of(db, invoices[0].id)
        assert [a.attempt_no for a in attempts] == [1, 2]
        assert [a.result for a in attempts] == [AttemptResult.FAILURE, AttemptResult.SUCCESS]
        keys = {call.kwargs["idempotency_key"] for call in gateway.charge.await_args_list}
        assert keys == {invoices[0].uid}
        await db.refresh(membership)
        assert membership.next_billing_at == MAR_1
        assert membership.status == MembershipStatus.ACTIVE

    async def test_concurrent_ticks_bill_once(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """동시에 실행된 두 틱도 한 번만 청구."""
        await db.commit()

        first, second = await asyncio.gather(orchestrator.run_tick(FEB_1), orchestrator.run_tick(FEB_1))

        assert first.succeeded + second.succeeded == 1
        assert gateway.charge.await_count == 1
        invoices = await invoices_of(db, membership.id)
        assert len(invoices) == 1
        assert len(await attempts_of(db, invoices[0].id)) == 1


class TestIsolation:
    """구독별 트랜잭션 격리 테스트."""

    async def test_persistence_error_rolls_back_one_membership(
        self, db: AsyncSession, orchestrator, gateway, monkeypatch, member, other_member, plan
    ):
        """한 구독의 저장 실패가 다른 구독의 진행을 되돌리지 않음."""
        healthy = await membership_service.subscribe(
            db, member.id, plan.id, billing_mode=RECURRING, started_at=JAN_1
        )
        broken = await membership_service.subscribe(
            db, other_member.id, plan.id, billing_mode=RECURRING, started_at=JAN_1
        )
        for m, key in ((member, "key-healthy"), (other_member, "key-broken")):
            await payment_method_service.register_method(db, m.id, customer_ref=f"cust-{m.mid}", gateway_token=key)
        await db.commit()

        original = attempt_service.record_attempt

        async def _record_attempt(session, invoice_id, **kwargs):
            invoice = await session.get(PlanInvoice, invoice_id)
            if invoice.membership_id == broken.id:
                raise OperationalError("INSERT INTO plan_attempts", None, Exception("disk I/O error"))
            return await original(session, invoice_id, **kwargs)

        monkeypatch.setattr(attempt_service, "record_attempt", _record_attempt)

        summary = await orchestrator.run_tick(FEB_1)

        assert summary.processed == 2
        assert summary.succeeded == 1
        assert summary.errors == 1
        await db.refresh(healthy)
        await db.refresh(broken)
        assert healthy.next_billing_at == MAR_1
        assert broken.next_billing_at == FEB_1
        assert broken.status == MembershipStatus.ACTIVE
        # 실패한 구독의 청구서도 롤백 — The failed membership's invoice was rolled back
        assert await invoices_of(db, broken.id) == []

    async def test_missing_price_is_skipped(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method, plan
    ):
        """활성 가격이 없으면 청구서 없이 건너뜀."""
        price = await plan_service.resolve_price(db, plan.id, 1, RECURRING)
        await plan_service.set_price_active(db, price.id, False)
        await db.commit()

        summary = await orchestrator.run_tick(FEB_1)

        assert summary.skipped == 1
        gateway.charge.assert_not_awaited()
        assert await invoices_of(db, membership.id) == []

    async def test_paused_and_cancelled_are_not_billed(
        self, db: AsyncSession, orchestrator, gateway, member, other_member, plan
    ):
        """일시정지/해지 구독은 청구 대상이 아님."""
        paused = await membership_service.subscribe(db, member.id, plan.id, billing_mode=RECURRING, started_at=JAN_1)
        cancelled = await membership_service.subscribe(
            db, other_member.id, plan.id, billing_mode=RECURRING, started_at=JAN_1
        )
        await membership_service.pause(db, paused.id)
        await membership_service.cancel(db, cancelled.id)
        await db.commit()

        summary = await orchestrator.run_tick(FEB_1)

        assert summary.processed == 0
        gateway.charge.assert_not_awaited()

    async def test_process_membership_directly(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """단일 구독 처리 진입점."""
        await db.commit()

        outcome = await orchestrator.process_membership(membership.id, FEB_1)

        assert outcome == BillingOutcome.SUCCEEDED
        await db.refresh(membership)
        assert membership.next_billing_at == MAR_1

    async def test_process_membership_delivers_notification_before_returning(
        self, db: AsyncSession, orchestrator, membership, payment_method, member
    ):
        """단일 처리도 결제 알림 전송을 마친 뒤 반환."""
        await db.commit()

        await orchestrator.process_membership(membership.id, FEB_1)

        assert not orchestrator._pending_notifications
        _, total = await notification_service.list_for_member(db, member.id)
        assert total == 1

    async def test_unexpected_notification_error_is_contained(
        self, db: AsyncSession, orchestrator, membership, payment_method, monkeypatch
    ):
        """알림 전송 중 예기치 못한 예외도 청구 결과에 영향 없음."""
        async def _crash(*args, **kwargs):
            raise RuntimeError("template missing")

        monkeypatch.setattr(notification_service, "notify", _crash)
        await db.commit()

        outcome = await orchestrator.process_membership(membership.id, FEB_1)

        assert outcome == BillingOutcome.SUCCEEDED
        assert not orchestrator._pending_notifications


class TestDunning:
    """미납 재시도 정책 테스트."""

    async def test_retry_backoff_doubles_and_caps(self, orchestrator):
        """재시도 대기: 60분, 120분, 240분, 이후 상한 240분."""
        assert orchestrator.retry_backoff(1) == timedelta(minutes=60)
        assert orchestrator.retry_backoff(2) == timedelta(minutes=120)
        assert orchestrator.retry_backoff(3) == timedelta(minutes=240)
        assert orchestrator.retry_backoff(4) == timedelta(minutes=240)

    async def test_max_attempts_cancels_membership(
        self, db: AsyncSession, orchestrator, gateway, membership, payment_method
    ):
        """최대 실패 횟수(3) 도달 시 청구서 FAILED, 구독 자동 해지."""
        gateway.charge.return_value = declined()
        await db.commit()

        first_retry = FEB_1 + timedelta(minutes=60)
        second_retry = first_retry + timedelta(minutes=120)
        await orchestrator.run_tick(FEB_1)
        await orchestrator.run_tick(first_retry)
        await orchestrator.run_tick(second_retry)

        await db.refresh(membership)
        assert membership.status == MembershipStatus.CANCELLED
        assert membership.cancelled_at is not None
        assert membership.next_billing_at == FEB_1

        invoices = await invoices_of(db, membership.id)
        assert len(invoices) == 1
        assert invoices[0].status == InvoiceStatus.FAILED
        assert invoices[0].next_attempt_at is None
        assert await attempt_service.count_failures(db, invoices[0].id) == 3

        summary = await orchestrator.run_tick(second_retry + timedelta(days=1))
        assert summary.processed == 0
        assert gateway.charge.await_count == 3


class TestRetryAfterTimeout:
    """응답 시간 초과 뒤 재시도가 이미 결제된 결제를 만나는 경우."""

    @staticmethod
    def _portone(calls: list[str]) -> PortOneGateway:
        paid_body = '{"id":"%s","status":"PAID","pgTxId":"pg-tx-first","paidAt":"2024-02-01T00:00:02Z"}'

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            payment_id = request.url.path.split("/")[2]
            if request.method == "GET":
                return httpx.Response(200, text=paid_body % payment_id)
            if calls.count("POST") == 1:
                # 게이트웨이는 결제했지만 응답이 늦음 — Charged, but the answer never arrived
                raise httpx.ReadTimeout("read timed out", request=request)
            return httpx.Response(409, json={"type": "ALREADY_PAID", "message": "이미 결제된 건입니다."})

        return PortOneGateway(
            api_secret="secret-test",
            store_id="store-abc",
            base_url="https://api.portone.test",
            channel_key="",
            is_test=True,
            order_name="도담 정기결제",
            timeout=3,
            transport=httpx.MockTransport(handler),
        )

    async def test_already_paid_retry_settles_invoice(
        self, db: AsyncSession, session_factory, membership, payment_method
    ):
        calls: list[str] = []
        orchestrator = BillingOrchestrator(
            gateway=self._portone(calls),
            session_factory=session_factory,
            max_workers=1,
            gateway_timeout=5,
            max_attempts=3,
            backoff_minutes=60,
            backoff_max_minutes=240,
        )
        await db.commit()

        first = await orchestrator.run_tick(FEB_1)
        assert first.failed == 1
        await db.refresh(membership)
        assert membership.status == MembershipStatus.PAST_DUE

        retry = await orchestrator.run_tick(FEB_1 + timedelta(minutes=60))
        assert retry.succeeded == 1
        assert calls == ["POST", "POST", "GET"]

        await db.refresh(membership)
        assert membership.status == MembershipStatus.ACTIVE
        assert membership.next_billing_at == MAR_1

        [invoice] = await invoices_of(db, membership.id)
        assert invoice.status == InvoiceStatus.PAID
        attempts = await attempts_of(db, invoice.id)
        assert [a.result for a in attempts] == [AttemptResult.FAILURE, AttemptResult.SUCCESS]
        assert attempts[0].failure_reason == GATEWAY_TIMEOUT
        assert attempts[1].external_attempt_id == "pg-tx-first"

        later = await orchestrator.run_tick(FEB_1 + timedelta(minutes=180))
        assert later.processed == 0
        await db.refresh(membership)
        assert membership.status == MembershipStatus.ACTIVE


class TestMonthEndCycles:
    """월말 시작 구독의 청구 주기는 시작일을 기준으로 계산."""

    async def test_cycles_follow_start_day(self, db: AsyncSession, orchestrator, member, plan, payment_method):
        feb_29 = datetime(2024, 2, 29, tzinfo=timezone.utc)
        mar_31 = datetime(2024, 3, 31, tzinfo=timezone.utc)
        apr_30 = datetime(2024, 4, 30, tzinfo=timezone.utc)
        membership = await membership_service.subscribe(
            db, member.id, plan.id, term_months=1, billing_mode=RECURRING,
            started_at=datetime(2024, 1, 31, tzinfo=timezone.utc),
        )
        await db.commit()
        assert membership.next_billing_at == feb_29

        await orchestrator.run_tick(feb_29)
        await db.refresh(membership)
        assert membership.next_billing_at == mar_31

        await orchestrator.run_tick(mar_31)
        await db.refresh(membership)
        assert membership.next_billing_at == apr_30

        invoices = sorted(await invoices_of(db, membership.id), key=lambda i: i.period_start)
        assert [(i.period_start, i.period_end) for i in invoices] == [(feb_29, mar_31), (mar_31, apr_30)]
