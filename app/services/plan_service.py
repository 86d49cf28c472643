"""플랜 카탈로그 서비스 — 가격 조회 및 카탈로그 관리 비즈니스 로직.

Plan Catalog Service — Price resolution for billing and administrator
catalog operations (plans, benefits, prices).
"""

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.plan import Plan, PlanBenefit, PlanName, PlanPrice, PlanTerm
from app.repositories.plan_member_repository import plan_member_repository
from app.repositories.plan_repository import (
    plan_benefit_repository,
    plan_name_repository,
    plan_price_repository,
    plan_repository,
    plan_term_repository,
)
from app.schemas.billing import PlanBenefitResponse, PlanDetailResponse, PlanPriceResponse
from app.utils.exceptions import BadRequestError, DuplicateError, NotFoundError, PlanInUseError, PriceNotFoundError

logger = logging.getLogger(__name__)


class PlanService:
    """플랜 카탈로그 서비스.

    Plan catalog service. ``resolve_price`` is the single entry point the
    billing orchestrator uses to price a cycle.
    """

    # --- 가격 조회 (Price resolution) ---

    async def resolve_price(
        self,
        db: AsyncSession,
        plan_id: UUID,
        term_months: int,
        billing_mode: str,
    ) -> PlanPrice:
        """플랜/약정/결제방식 조합의 활성 가격을 조회합니다.

        Resolve the single active price row for (plan, term months, mode).

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            plan_id: 플랜 UUID (Plan UUID)
            term_months: 약정 개월 수 (Term length in months)
            billing_mode: 결제 방식 (Billing mode label)

        Returns:
            PlanPrice: 활성 가격 (Active price row)

        Raises:
            PriceNotFoundError: 약정 또는 활성 가격이 없을 때
                                (No such term, or no active price for the combination)
        """
        term: PlanTerm | None = await plan_term_repository.get_by_months(db, term_months)
        if term is None:
            raise PriceNotFoundError()

        price: PlanPrice | None = await plan_price_repository.find_active(
            db, plan_id, term.id, billing_mode
        )
        if price is None:
            raise PriceNotFoundError()
        return price

    async def list_active_prices(
        self,
        db: AsyncSession,
        plan_id: UUID,
    ) -> list[PlanPriceResponse]:
        """플랜의 활성 가격 목록을 약정 오름차순, 결제방식 순으로 조회합니다.

        List a plan's active prices ordered by term ascending, then mode.
        """
        rows = await plan_price_repository.list_active_with_terms(db, plan_id)
        return [
            PlanPriceResponse(
                id=str(price.id),
                term_months=months,
                billing_mode=price.billing_mode,
                amount=price.amount,
                currency=price.currency,
            )
            for price, months in rows
        ]

    # --- 플랜 조회 (Plan lookup) ---

    async def get_active_plans(self, db: AsyncSession) -> list[PlanDetailResponse]:
        """판매 중인 플랜 목록을 혜택/가격과 함께 조회합니다.

        List active plans with their benefit and active prices.
        """
        plans = await plan_repository.get_active(db)
        plan_ids: list[UUID] = [p.id for p in plans]
        names: dict[UUID, str] = await plan_name_repository.get_names(
            db, list({p.plan_name_id for p in plans})
        )
        benefits: dict[UUID, PlanBenefit] = await plan_benefit_repository.get_by_plans(db, plan_ids)

        details: list[PlanDetailResponse] = []
        for plan in plans:
            details.append(
                await self._to_detail(db, plan, names.get(plan.plan_name_id, ""), benefits.get(plan.id))
            )
        return details

    async def get_plan_by_code(self, db: AsyncSession, code: str) -> PlanDetailResponse:
        """플랜 코드로 플랜 상세를 조회합니다.

        Retrieve a plan's detail by code.

        Raises:
            NotFoundError: 플랜을 찾을 수 없을 때 (Plan not found)
        """
        plan: Plan | None = await plan_repository.get_by_code(db, code)
        if plan is None:
            raise NotFoundError("Plan not found")
        names = await plan_name_repository.get_names(db, [plan.plan_name_id])
        benefit = await plan_benefit_repository.get_first_by_plan(db, plan.id)
        return await self._to_detail(db, plan, names.get(plan.plan_name_id, ""), benefit)

    async def _to_detail(
        self,
        db: AsyncSession,
        plan: Plan,
        name: str,
        benefit: PlanBenefit | None,
    ) -> PlanDetailResponse:
        return PlanDetailResponse(
            id=str(plan.id),
            code=plan.code,
            name=name,
            is_active=plan.is_active,
            benefit=(
                PlanBenefitResponse(price_cap=benefit.price_cap, note=benefit.note)
                if benefit is not None
                else None
            ),
            prices=await self.list_active_prices(db, plan.id),
        )

    # --- 카탈로그 관리 (Catalog administration) ---

    async def create_plan(
        self,
        db: AsyncSession,
        code: str,
        name: str,
        is_active: bool = True,
    ) -> Plan:
        """새 플랜을 생성합니다. 이름 행이 없으면 함께 생성합니다.

        Create a plan, creating its name row when missing. Codes are stored
        upper-cased.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            code: 플랜 코드 (Plan code)
            name: 플랜 이름 (Plan display name)
            is_active: 판매 여부 (Active flag)

        Returns:
            Plan: 생성된 플랜 (Created plan)

        Raises:
            BadRequestError: 코드가 비어 있을 때 (Blank code)
            DuplicateError: 같은 코드의 플랜이 이미 존재할 때 (Code already used)
        """
        normalized: str = code.strip().upper()
        if not normalized:
            raise BadRequestError("Plan code is required")
        if await plan_repository.get_by_code(db, normalized) is not None:
            raise DuplicateError("Plan code already exists")

        plan_name: PlanName | None = await plan_name_repository.get_by_name(db, name)
        if plan_name is None:
            plan_name = await plan_name_repository.create(db, {"name": name})

        plan: Plan = await plan_repository.create(
            db,
            {"code": normalized, "plan_name_id": plan_name.id, "is_active": is_active},
        )
        logger.info("Plan created", extra={"plan_code": plan.code})
        return plan

    async def set_plan_active(self, db: AsyncSession, plan_id: UUID, is_active: bool) -> Plan:
        """플랜 판매 여부를 변경합니다 (Toggle a plan's active flag)."""
        plan: Plan | None = await plan_repository.update(db, plan_id, {"is_active": is_active})
        if plan is None:
            raise NotFoundError("Plan not found")
        return plan

    async def add_benefit(
        self,
        db: AsyncSession,
        plan_id: UUID,
        price_cap: Decimal | None = None,
        note: str | None = None,
    ) -> PlanBenefit:
        """플랜에 혜택을 추가합니다 (Attach benefit metadata to a plan)."""
        if await plan_repository.get_by_id(db, plan_id) is None:
            raise NotFoundError("Plan not found")
        return await plan_benefit_repository.create(
            db, {"plan_id": plan_id, "price_cap": price_cap, "note": note}
        )

    async def get_or_create_term(self, db: AsyncSession, months: int) -> PlanTerm:
        """개월 수의 약정 행을 조회하거나 생성합니다 (Get or create a term row)."""
        if months < 1:
            raise BadRequestError("Term months must be positive")
        term: PlanTerm | None = await plan_term_repository.get_by_months(db, months)
        if term is None:
            term = await plan_term_repository.create(db, {"months": months})
        return term

    async def create_price(
        self,
        db: AsyncSession,
        plan_id: UUID,
        term_months: int,
        billing_mode: str,
        amount: Decimal,
        currency: str = "KRW",
        is_active: bool = True,
    ) -> PlanPrice:
        """플랜/약정/결제방식 조합의 가격을 등록합니다.

        Register the price of a (plan, term, mode) combination.

        Raises:
            NotFoundError: 플랜이 없을 때 (Plan not found)
            BadRequestError: 금액이 음수일 때 (Negative amount)
            DuplicateError: 같은 조합의 가격이 이미 있을 때
                            (Combination already priced)
        """
        if await plan_repository.get_by_id(db, plan_id) is None:
            raise NotFoundError("Plan not found")
        if amount < 0:
            raise BadRequestError("Price amount must not be negative")

        term: PlanTerm = await self.get_or_create_term(db, term_months)
        existing = await plan_price_repository.get_by_combination(db, plan_id, term.id, billing_mode)
        if existing is not None:
            raise DuplicateError("Price already exists for this plan/term/mode")

        return await plan_price_repository.create(
            db,
            {
                "plan_id": plan_id,
                "term_id": term.id,
                "billing_mode": billing_mode,
                "amount": amount,
                "currency": currency.upper(),
                "is_active": is_active,
            },
        )

    async def set_price_active(self, db: AsyncSession, price_id: UUID, is_active: bool) -> PlanPrice:
        """가격 활성 여부를 변경합니다 (Toggle a price's active flag)."""
        price: PlanPrice | None = await plan_price_repository.update(db, price_id, {"is_active": is_active})
        if price is None:
            raise NotFoundError("Price not found")
        return price

    async def delete_plan(self, db: AsyncSession, plan_id: UUID) -> None:
        """플랜을 혜택/가격과 함께 삭제합니다.

        Delete a plan together with its benefits and prices. Child rows are
        removed explicitly before the plan, all inside the caller's
        transaction.

        Raises:
            NotFoundError: 플랜이 없을 때 (Plan not found)
            PlanInUseError: 구독이 플랜을 참조할 때 (Memberships reference the plan;
                            cancelled ones keep their billing history)
        """
        plan: Plan | None = await plan_repository.get_by_id(db, plan_id)
        if plan is None:
            raise NotFoundError("Plan not found")
        if await plan_member_repository.count_by_plan(db, plan_id) > 0:
            raise PlanInUseError()

        benefits: int = await plan_benefit_repository.delete_by_plan(db, plan_id)
        prices: int = await plan_price_repository.delete_by_plan(db, plan_id)
        await plan_repository.delete(db, plan_id)
        logger.info(
            "Plan deleted",
            extra={"plan_code": plan.code, "benefits_deleted": benefits, "prices_deleted": prices},
        )


# 싱글턴 인스턴스 — Singleton instance
plan_service: PlanService = PlanService()
