"""구독 서비스 — 플랜 구독(멤버십) 생명주기 비즈니스 로직.

Membership Service — Owns the PlanMember lifecycle: subscribe, pause,
resume, cancel, and the due-for-billing query that drives each billing tick.
"""

import logging
from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import ensure_utc, utcnow
from app.models.plan import BillingMode, Plan
from app.models.subscription import MembershipStatus, PlanInvoice, PlanMember
from app.repositories.invoice_repository import invoice_repository
from app.repositories.member_repository import member_repository
from app.repositories.payment_method_repository import payment_method_repository
from app.repositories.plan_member_repository import plan_member_repository
from app.repositories.plan_repository import plan_repository
from app.services.plan_service import plan_service
from app.utils.dates import add_months
from app.utils.exceptions import AlreadySubscribedError, BadRequestError, NotFoundError

logger = logging.getLogger(__name__)


class MembershipService:
    """구독 서비스.

    Membership lifecycle service.

    Status transitions:
        ACTIVE <-> PAST_DUE (billing failure / success)
        ACTIVE | PAST_DUE -> PAUSED -> ACTIVE (pause / resume)
        any -> CANCELLED (terminal)
    """

    async def subscribe(
        self,
        db: AsyncSession,
        member_id: UUID,
        plan_id: UUID,
        term_months: int = 1,
        billing_mode: str | None = None,
        started_at: datetime | None = None,
        payment_method_id: UUID | None = None,
    ) -> PlanMember:
        """플랜 구독을 생성합니다.

        Create an ACTIVE membership whose first billing falls one term after
        the start.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            member_id: 회원 UUID (Member UUID)
            plan_id: 플랜 UUID (Plan UUID)
            term_months: 약정 개월 수 (Billing term in months)
            billing_mode: 결제 방식, 생략 시 약정에 따라 결정
                          (Billing mode, defaults from the term)
            started_at: 구독 시작 일시, 생략 시 현재 (Start time, defaults to now)
            payment_method_id: 선호 결제수단, 선택 (Preferred payment method, optional)

        Returns:
            PlanMember: 생성된 구독 (Created membership)

        Raises:
            NotFoundError: 회원/플랜/결제수단을 찾을 수 없을 때 (Member, plan or method not found)
            BadRequestError: 판매 중지된 플랜일 때 (Plan is inactive)
            PriceNotFoundError: 해당 조합의 활성 가격이 없을 때 (Combination unavailable)
            AlreadySubscribedError: 해지되지 않은 구독이 이미 있을 때
                                    (Member already holds a live membership)
        """
        if await member_repository.get_by_id(db, member_id) is None:
            raise NotFoundError("Member not found")
        plan: Plan | None = await plan_repository.get_by_id(db, plan_id)
        if plan is None:
            raise NotFoundError("Plan not found")
        if not plan.is_active:
            raise BadRequestError("Plan is not available for subscription")

        mode: str = billing_mode or BillingMode.default_for(term_months)
        # 구독 시점에 가격 조합 검증 — Reject combinations billing could never price
        await plan_service.resolve_price(db, plan_id, term_months, mode)

        if payment_method_id is not None:
            method = await payment_method_repository.get_by_id(db, payment_method_id)
            if method is None or method.member_id != member_id:
                raise NotFoundError("Payment method not found")

        if await plan_member_repository.get_live_by_member(db, member_id) is not None:
            raise AlreadySubscribedError()

        start: datetime = ensure_utc(started_at) if started_at else utcnow()
        membership: PlanMember = await plan_member_repository.create(
            db,
            {
                "member_id": member_id,
                "plan_id": plan_id,
                "term_months": term_months,
                "billing_mode": mode,
                "payment_method_id": payment_method_id,
                "status": MembershipStatus.ACTIVE,
                "started_at": start,
                "next_billing_at": add_months(start, term_months),
            },
        )
        logger.info(
            "Membership created",
            extra={"membership_id": str(membership.id), "member_id": str(member_id), "plan_code": plan.code},
        )
        return membership

    async def get_membership(self, db: AsyncSession, membership_id: UUID) -> PlanMember:
        """구독을 조회합니다 (Retrieve a membership or raise NotFoundError)."""
        membership: PlanMember | None = await plan_member_repository.get_by_id(db, membership_id)
        if membership is None:
            raise NotFoundError("Membership not found")
        return membership

    async def get_active_membership(self, db: AsyncSession, member_id: UUID) -> PlanMember | None:
        """회원의 해지되지 않은 구독을 조회합니다 (Member's live membership, if any)."""
        return await plan_member_repository.get_live_by_member(db, member_id)

    async def cancel(self, db: AsyncSession, membership_id: UUID) -> PlanMember:
        """구독을 해지합니다. 이미 해지된 구독은 그대로 반환합니다.

        Cancel a membership. Cancelling an already-cancelled membership is a
        no-op. A charge already in flight for the current tick still
        completes and is recorded.

        Raises:
            NotFoundError: 구독을 찾을 수 없을 때 (Membership not found)
        """
        membership: PlanMember = await self.get_membership(db, membership_id)
        if membership.status == MembershipStatus.CANCELLED:
            return membership

        membership.status = MembershipStatus.CANCELLED
        membership.cancelled_at = utcnow()
        await db.flush()
        logger.info("Membership cancelled", extra={"membership_id": str(membership_id)})
        return membership

    async def pause(self, db: AsyncSession, membership_id: UUID) -> PlanMember:
        """구독을 일시정지합니다. 일시정지 중에는 청구되지 않습니다.

        Pause a membership; paused memberships are skipped by billing.
        """
        membership: PlanMember = await self.get_membership(db, membership_id)
        if membership.status == MembershipStatus.PAUSED:
            return membership
        if membership.status not in MembershipStatus.BILLABLE:
            raise BadRequestError("Only active or past-due memberships can be paused")

        membership.status = MembershipStatus.PAUSED
        await db.flush()
        return membership

    async def resume(self, db: AsyncSession, membership_id: UUID) -> PlanMember:
        """일시정지된 구독을 재개합니다 (Resume a paused membership as ACTIVE)."""
        membership: PlanMember = await self.get_membership(db, membership_id)
        if membership.status != MembershipStatus.PAUSED:
            raise BadRequestError("Only paused memberships can be resumed")

        membership.status = MembershipStatus.ACTIVE
        await db.flush()
        return membership

    async def due_for_billing(self, db: AsyncSession, as_of: datetime) -> Sequence[PlanMember]:
        """청구 시점이 도래한 구독 목록을 조회합니다.

        Return every ACTIVE or PAST_DUE membership whose next-billing
        timestamp is at or before ``as_of``, each exactly once.
        """
        return await plan_member_repository.get_due(db, ensure_utc(as_of))

    async def list_invoices(self, db: AsyncSession, membership_id: UUID) -> Sequence[PlanInvoice]:
        """구독의 청구서 목록을 최신 주기 순으로 조회합니다 (Newest cycle first)."""
        await self.get_membership(db, membership_id)
        return await invoice_repository.list_by_membership(db, membership_id)

    async def get_invoice_by_uid(self, db: AsyncSession, uid: str) -> PlanInvoice:
        """외부 식별자로 청구서를 조회합니다 (Retrieve an invoice by external uid)."""
        invoice: PlanInvoice | None = await invoice_repository.get_by_uid(db, uid)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice


# 싱글턴 인스턴스 — Singleton instance
membership_service: MembershipService = MembershipService()
