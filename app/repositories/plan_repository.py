"""플랜 카탈로그 레포지토리 — 플랜/이름/약정/가격/혜택 DB 쿼리 담당.

Plan catalog repositories — Database queries for plans, plan names,
billing terms, prices and benefits. One canonical repository per table.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.plan import Plan, PlanBenefit, PlanName, PlanPrice, PlanTerm
from app.repositories.base import BaseRepository


class PlanRepository(BaseRepository[Plan]):
    """플랜 레포지토리.

    Plan repository with code and active-flag lookups.

    Extends:
        BaseRepository[Plan]
    """

    def __init__(self) -> None:
        super().__init__(Plan)

    async def get_by_code(
        self,
        db: AsyncSession,
        code: str,
    ) -> Plan | None:
        """플랜 코드로 플랜을 조회합니다 (대소문자 무시).

        Retrieve a plan by code, case-insensitively.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            code: 플랜 코드 (Plan code)

        Returns:
            Plan | None: 조회된 플랜 또는 None (Found plan or None)
        """
        result = await db.execute(select(Plan).where(Plan.code == code.strip().upper()))
        return result.scalar_one_or_none()

    async def get_active(
        self,
        db: AsyncSession,
    ) -> Sequence[Plan]:
        """판매 중인 플랜 목록을 코드 순으로 조회합니다.

        List active plans ordered by code.
        """
        result = await db.execute(
            select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.code)
        )
        return result.scalars().all()


class PlanNameRepository(BaseRepository[PlanName]):
    """플랜 이름 레포지토리 (Plan name repository)."""

    def __init__(self) -> None:
        super().__init__(PlanName)

    async def get_by_name(self, db: AsyncSession, name: str) -> PlanName | None:
        result = await db.execute(select(PlanName).where(PlanName.name == name))
        return result.scalar_one_or_none()

    async def get_names(
        self,
        db: AsyncSession,
        plan_name_ids: list[UUID],
    ) -> dict[UUID, str]:
        """이름 ID 목록을 {id: 이름} 딕셔너리로 조회합니다.

        Map plan name ids to their display names in one query.
        """
        if not plan_name_ids:
            return {}
        result = await db.execute(
            select(PlanName.id, PlanName.name).where(PlanName.id.in_(plan_name_ids))
        )
        return {row.id: row.name for row in result}


class PlanTermRepository(BaseRepository[PlanTerm]):
    """약정 기간 레포지토리 (Billing term repository)."""

    def __init__(self) -> None:
        super().__init__(PlanTerm)

    async def get_by_months(self, db: AsyncSession, months: int) -> PlanTerm | None:
        """개월 수로 약정을 조회합니다 (Retrieve a term by its month count)."""
        result = await db.execute(select(PlanTerm).where(PlanTerm.months == months))
        return result.scalar_one_or_none()


class PlanPriceRepository(BaseRepository[PlanPrice]):
    """플랜 가격 레포지토리.

    Plan price repository. Price rows are unique per (plan, term, mode).

    Extends:
        BaseRepository[PlanPrice]
    """

    def __init__(self) -> None:
        super().__init__(PlanPrice)

    async def get_by_combination(
        self,
        db: AsyncSession,
        plan_id: UUID,
        term_id: UUID,
        billing_mode: str,
    ) -> PlanPrice | None:
        """플랜/약정/결제방식 조합의 가격 행을 조회합니다 (활성 여부 무관).

        Retrieve the price row of a (plan, term, mode) combination, active or not.
        """
        result = await db.execute(
            select(PlanPrice).where(
                PlanPrice.plan_id == plan_id,
                PlanPrice.term_id == term_id,
                PlanPrice.billing_mode == billing_mode,
            )
        )
        return result.scalar_one_or_none()

    async def find_active(
        self,
        db: AsyncSession,
        plan_id: UUID,
        term_id: UUID,
        billing_mode: str,
    ) -> PlanPrice | None:
        """플랜/약정/결제방식 조합의 활성 가격을 조회합니다.

        Retrieve the active price for a (plan, term, mode) combination.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            plan_id: 플랜 UUID (Plan UUID)
            term_id: 약정 UUID (Term UUID)
            billing_mode: 결제 방식 (Billing mode label)

        Returns:
            PlanPrice | None: 활성 가격 또는 None (Active price or None)
        """
        result = await db.execute(
            select(PlanPrice).where(
                PlanPrice.plan_id == plan_id,
                PlanPrice.term_id == term_id,
                PlanPrice.billing_mode == billing_mode,
                PlanPrice.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_active_with_terms(
        self,
        db: AsyncSession,
        plan_id: UUID,
    ) -> list[tuple[PlanPrice, int]]:
        """플랜의 활성 가격을 (가격, 개월 수) 목록으로 조회합니다.

        List a plan's active prices with their term length, ordered by term
        months ascending and then billing mode.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            plan_id: 플랜 UUID (Plan UUID)

        Returns:
            list[tuple[PlanPrice, int]]: (가격, 약정 개월 수) 목록
                                         (Price rows paired with term months)
        """
        query: Select = (
            select(PlanPrice, PlanTerm.months)
            .join(PlanTerm, PlanTerm.id == PlanPrice.term_id)
            .where(PlanPrice.plan_id == plan_id, PlanPrice.is_active.is_(True))
            .order_by(PlanTerm.months.asc(), PlanPrice.billing_mode.asc())
        )
        result = await db.execute(query)
        return [(row[0], row[1]) for row in result.all()]

    async def delete_by_plan(self, db: AsyncSession, plan_id: UUID) -> int:
        """플랜의 모든 가격을 삭제합니다 (Delete every price row of a plan)."""
        result = await db.execute(delete(PlanPrice).where(PlanPrice.plan_id == plan_id))
        await db.flush()
        return result.rowcount


class PlanBenefitRepository(BaseRepository[PlanBenefit]):
    """플랜 혜택 레포지토리 (Plan benefit repository)."""

    def __init__(self) -> None:
        super().__init__(PlanBenefit)

    async def get_first_by_plan(self, db: AsyncSession, plan_id: UUID) -> PlanBenefit | None:
        result = await db.execute(
            select(PlanBenefit).where(PlanBenefit.plan_id == plan_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_plans(
        self,
        db: AsyncSession,
        plan_ids: list[UUID],
    ) -> dict[UUID, PlanBenefit]:
        """여러 플랜의 혜택을 한 번에 조회합니다 (N+1 회피).

        Fetch benefits for many plans in one query, keyed by plan id.
        """
        if not plan_ids:
            return {}
        result = await db.execute(select(PlanBenefit).where(PlanBenefit.plan_id.in_(plan_ids)))
        by_plan: dict[UUID, PlanBenefit] = {}
        for benefit in result.scalars().all():
            by_plan.setdefault(benefit.plan_id, benefit)
        return by_plan

    async def delete_by_plan(self, db: AsyncSession, plan_id: UUID) -> int:
        """플랜의 모든 혜택을 삭제합니다 (Delete every benefit row of a plan)."""
        result = await db.execute(delete(PlanBenefit).where(PlanBenefit.plan_id == plan_id))
        await db.flush()
        return result.rowcount


# 싱글턴 인스턴스 — Singleton instances
plan_repository: PlanRepository = PlanRepository()
plan_name_repository: PlanNameRepository = PlanNameRepository()
plan_term_repository: PlanTermRepository = PlanTermRepository()
plan_price_repository: PlanPriceRepository = PlanPriceRepository()
plan_benefit_repository: PlanBenefitRepository = PlanBenefitRepository()
