"""결제수단 레포지토리 — 빌링키/카드 메타 DB 쿼리 담당.

Payment Method Repository — Database queries for member billing keys.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import PlanPayment
from app.repositories.base import BaseRepository


class PaymentMethodRepository(BaseRepository[PlanPayment]):
    """결제수단 레포지토리.

    Payment method repository keyed by (member, customer reference).

    Extends:
        BaseRepository[PlanPayment]
    """

    def __init__(self) -> None:
        super().__init__(PlanPayment)

    async def exists_for_customer(
        self,
        db: AsyncSession,
        member_id: UUID,
        customer_ref: str,
    ) -> bool:
        """회원/고객아이디 조합의 결제수단 존재 여부를 확인합니다.

        Check whether a (member, customer reference) method already exists.
        """
        return await self.exists(db, {"member_id": member_id, "customer_ref": customer_ref})

    async def find_latest_for_customer(
        self,
        db: AsyncSession,
        member_id: UUID,
        customer_ref: str,
    ) -> PlanPayment | None:
        """회원/고객아이디 조합의 가장 최근 결제수단을 조회합니다.

        Retrieve the most recently registered method for a member/customer pair.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            member_id: 회원 UUID (Member UUID)
            customer_ref: 게이트웨이 고객 아이디 (Gateway customer reference)

        Returns:
            PlanPayment | None: 결제수단 또는 None (Payment method or None)
        """
        result = await db.execute(
            select(PlanPayment)
            .where(PlanPayment.member_id == member_id, PlanPayment.customer_ref == customer_ref)
            .order_by(PlanPayment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_member(
        self,
        db: AsyncSession,
        member_id: UUID,
    ) -> Sequence[PlanPayment]:
        """회원의 결제수단 목록을 최신순으로 조회합니다.

        List a member's payment methods, newest first.
        """
        result = await db.execute(
            select(PlanPayment)
            .where(PlanPayment.member_id == member_id)
            .order_by(PlanPayment.created_at.desc())
        )
        return result.scalars().all()

    async def get_latest_active(
        self,
        db: AsyncSession,
        member_id: UUID,
    ) -> PlanPayment | None:
        """회원의 가장 최근 활성 결제수단을 조회합니다.

        Retrieve the member's newest active payment method.
        """
        result = await db.execute(
            select(PlanPayment)
            .where(PlanPayment.member_id == member_id, PlanPayment.is_active.is_(True))
            .order_by(PlanPayment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


# 싱글턴 인스턴스 — Singleton instance
payment_method_repository: PaymentMethodRepository = PaymentMethodRepository()
