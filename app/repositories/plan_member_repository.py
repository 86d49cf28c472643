"""구독 레포지토리 — 플랜 구독(멤버십) DB 쿼리 담당.

Plan Member Repository — Database queries for memberships, including the
due-for-billing scan and the row lock taken by the billing orchestrator.
"""

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import MembershipStatus, PlanMember
from app.repositories.base import BaseRepository


class PlanMemberRepository(BaseRepository[PlanMember]):
    """구독 레포지토리.

    Membership repository.

    Extends:
        BaseRepository[PlanMember]
    """

    def __init__(self) -> None:
        super().__init__(PlanMember)

    async def get_live_by_member(
        self,
        db: AsyncSession,
        member_id: UUID,
    ) -> PlanMember | None:
        """회원의 해지되지 않은 구독을 조회합니다.

        Retrieve the member's non-cancelled membership, if any.
        """
        result = await db.execute(
            select(PlanMember)
            .where(
                PlanMember.member_id == member_id,
                PlanMember.status != MembershipStatus.CANCELLED,
            )
            .order_by(PlanMember.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_due(
        self,
        db: AsyncSession,
        as_of: datetime,
    ) -> Sequence[PlanMember]:
        """청구 시점이 도래한 구독 목록을 조회합니다.

        List billable memberships whose next-billing timestamp is at or
        before ``as_of``, oldest due first.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            as_of: 기준 시각 (Cut-off timestamp, inclusive)

        Returns:
            Sequence[PlanMember]: 청구 대상 구독 목록 (Due memberships)
        """
        result = await db.execute(
            select(PlanMember)
            .where(
                PlanMember.status.in_(MembershipStatus.BILLABLE),
                PlanMember.next_billing_at <= as_of,
            )
            .order_by(PlanMember.next_billing_at.asc(), PlanMember.id)
        )
        return result.scalars().all()

    async def count_by_plan(
        self,
        db: AsyncSession,
        plan_id: UUID,
    ) -> int:
        """플랜을 참조하는 구독 수, 해지 포함 (Memberships on a plan, cancelled included)."""
        result = await db.execute(
            select(func.count()).select_from(PlanMember).where(PlanMember.plan_id == plan_id)
        )
        return result.scalar() or 0


# 싱글턴 인스턴스 — Singleton instance
plan_member_repository: PlanMemberRepository = PlanMemberRepository()
