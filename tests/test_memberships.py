"""구독(멤버십) 생명주기 테스트.

Membership lifecycle tests — Subscribe, one live membership per member,
pause/resume/cancel transitions, due-for-billing selection and
month-end date arithmetic.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.plan import BillingMode
from app.models.subscription import MembershipStatus
from app.services.member_service import member_service
from app.services.membership_service import membership_service
from app.services.plan_service import plan_service
from app.utils.dates import add_months, cycle_end
from app.utils.exceptions import AlreadySubscribedError, BadRequestError, NotFoundError, PriceNotFoundError
from tests.conftest import FEB_1, JAN_1, RECURRING


class TestSubscribe:
    """구독 생성 테스트."""

    async def test_subscribe_sets_first_billing(self, membership, member, plan):
        """시작 2024-01-01, 첫 청구 2024-02-01."""
        assert membership.member_id == member.id
        assert membership.plan_id == plan.id
        assert membership.status == MembershipStatus.ACTIVE
        assert membership.started_at == JAN_1
        assert membership.next_billing_at == FEB_1
        assert membership.billing_mode == RECURRING

    async def test_subscribe_default_mode(self, db: AsyncSession, member, plan):
        """결제방식 생략 시 약정에 맞는 기본값 사용."""
        await plan_service.create_price(db, plan.id, 3, BillingMode.PREPAID_TERM, Decimal("28000"))

        membership = await membership_service.subscribe(db, member.id, plan.id, term_months=3, started_at=JAN_1)

        assert membership.billing_mode == BillingMode.PREPAID_TERM
        assert membership.next_billing_at == datetime(2024, 4, 1, tzinfo=timezone.utc)

    async def test_subscribe_unpriced_combination(self, db: AsyncSession, member, plan):
        """가격이 없는 조합은 구독 불가."""
        with pytest.raises(PriceNotFoundError):
            await membership_service.subscribe(db, member.id, plan.id, term_months=6, billing_mode=RECURRING)

    async def test_subscribe_inactive_plan(self, db: AsyncSession, member, plan):
        await plan_service.set_plan_active(db, plan.id, False)
        with pytest.raises(BadRequestError):
            await membership_service.subscribe(db, member.id, plan.id, billing_mode=RECURRING)

    async def test_subscribe_unknown_member(self, db: AsyncSession, plan):
        with pytest.raises(NotFoundError):
            await membership_service.subscribe(db, uuid.uuid4(), plan.id, billing_mode=RECURRING)

    async def test_subscribe_with_foreign_payment_method(
        self, db: AsyncSession, other_member, plan, payment_method
    ):
        """다른 회원의 결제수단은 지정할 수 없음."""
        with pytest.raises(NotFoundError):
            await membership_service.subscribe(
                db, other_member.id, plan.id, billing_mode=RECURRING, payment_method_id=payment_method.id
            )

    async def test_one_live_membership(self, db: AsyncSession, membership, member, plan):
        """해지되지 않은 구독이 있으면 추가 구독 불가."""
        with pytest.raises(AlreadySubscribedError):
            await membership_service.subscribe(db, member.id, plan.id, billing_mode=RECURRING)

    async def test_resubscribe_after_cancel(self, db: AsyncSession, membership, member, plan):
        """해지 후에는 다시 구독 가능."""
        await membership_service.cancel(db, membership.id)

        renewed = await membership_service.subscribe(db, member.id, plan.id, billing_mode=RECURRING)

        assert renewed.id != membership.id
        live = await membership_service.get_active_membership(db, member.id)
        assert live.id == renewed.id


class TestTransitions:
    """상태 전이 테스트."""

    async def test_cancel_is_idempotent(self, db: AsyncSession, membership):
        cancelled = await membership_service.cancel(db, membership.id)
        first_cancelled_at = cancelled.cancelled_at

        again = await membership_service.cancel(db, membership.id)

        assert again.status == MembershipStatus.CANCELLED
        assert again.cancelled_at == first_cancelled_at

    async def test_pause_and_resume(self, db: AsyncSession, membership):
        paused = await membership_service.pause(db, membership.id)
        assert paused.status == MembershipStatus.PAUSED

        resumed = await membership_service.resume(db, membership.id)
        assert resumed.status == MembershipStatus.ACTIVE

    async def test_cannot_pause_cancelled(self, db: AsyncSession, membership):
        await membership_service.cancel(db, membership.id)
        with pytest.raises(BadRequestError):
            await membership_service.pause(db, membership.id)

    async def test_cannot_resume_active(self, db: AsyncSession, membership):
        with pytest.raises(BadRequestError):
            await membership_service.resume(db, membership.id)

    async def test_unknown_membership(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await membership_service.cancel(db, uuid.uuid4())


class TestDueForBilling:
    """청구 대상 조회 테스트."""

    async def test_due_at_boundary(self, db: AsyncSession, membership):
        """다음 청구일과 같은 시각은 청구 대상, 1초 전은 아님."""
        due = await membership_service.due_for_billing(db, FEB_1)
        assert [m.id for m in due] == [membership.id]

        assert list(await membership_service.due_for_billing(db, FEB_1 - timedelta(seconds=1))) == []

    async def test_due_includes_past_due(self, db: AsyncSession, membership):
        membership.status = MembershipStatus.PAST_DUE
        await db.flush()

        due = await membership_service.due_for_billing(db, FEB_1)
        assert [m.id for m in due] == [membership.id]

    async def test_paused_not_due(self, db: AsyncSession, membership):
        await membership_service.pause(db, membership.id)
        assert list(await membership_service.due_for_billing(db, FEB_1)) == []

    async def test_naive_as_of_is_utc(self, db: AsyncSession, membership):
        due = await membership_service.due_for_billing(db, datetime(2024, 2, 1))
        assert len(due) == 1


class TestAddMonths:
    """월 단위 날짜 계산 테스트."""

    def test_plain_month(self):
        assert add_months(JAN_1, 1) == FEB_1

    def test_month_end_clamps(self):
        """1월 31일 + 1개월 = 2월 말일 (윤년 29일)."""
        assert add_months(datetime(2024, 1, 31, tzinfo=timezone.utc), 1) == datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert add_months(datetime(2023, 1, 31, tzinfo=timezone.utc), 1) == datetime(2023, 2, 28, tzinfo=timezone.utc)

    def test_year_rollover(self):
        assert add_months(datetime(2024, 11, 15, 9, 30, tzinfo=timezone.utc), 3) == datetime(
            2025, 2, 15, 9, 30, tzinfo=timezone.utc
        )


class TestCycleEnd:
    """시작일 기준 청구 주기 종료일 테스트."""

    def test_month_end_anchor_does_not_drift(self):
        """1월 31일 시작: 2월 29일 주기는 3월 31일에 끝남 (3월 29일이 아님)."""
        anchor = datetime(2024, 1, 31, tzinfo=timezone.utc)
        feb_29 = datetime(2024, 2, 29, tzinfo=timezone.utc)
        mar_31 = datetime(2024, 3, 31, tzinfo=timezone.utc)
        assert cycle_end(anchor, anchor, 1) == feb_29
        assert cycle_end(anchor, feb_29, 1) == mar_31
        assert cycle_end(anchor, mar_31, 1) == datetime(2024, 4, 30, tzinfo=timezone.utc)

    def test_multi_month_term(self):
        anchor = datetime(2024, 1, 31, tzinfo=timezone.utc)
        assert cycle_end(anchor, datetime(2024, 4, 30, tzinfo=timezone.utc), 3) == datetime(
            2024, 7, 31, tzinfo=timezone.utc
        )

    def test_period_off_anchor_ends_on_next_boundary(self):
        start = datetime(2024, 2, 10, tzinfo=timezone.utc)
        assert cycle_end(JAN_1, start, 1) == datetime(2024, 3, 1, tzinfo=timezone.utc)


class TestMemberDirectory:
    """회원 조회 테스트."""

    async def test_get_member(self, db: AsyncSession, member):
        found = await member_service.get_member(db, member.id)
        assert found.name == "김도담"
        assert (await member_service.get_member_by_mid(db, "dodam01")).id == member.id

    async def test_unknown_member(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await member_service.get_member(db, uuid.uuid4())
        with pytest.raises(NotFoundError):
            await member_service.get_member_by_mid(db, "nobody")
