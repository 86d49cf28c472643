"""청구서 레포지토리 — 인보이스 DB 쿼리 담당.

Invoice Repository — Database queries for per-cycle invoices.
"""

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import PlanInvoice
from app.repositories.base import BaseRepository


class InvoiceRepository(BaseRepository[PlanInvoice]):
    """청구서 레포지토리.

    Invoice repository.

    Extends:
        BaseRepository[PlanInvoice]
    """

    def __init__(self) -> None:
        super().__init__(PlanInvoice)

    async def get_by_uid(
        self,
        db: AsyncSession,
        uid: str,
    ) -> PlanInvoice | None:
        """외부 식별자로 청구서를 조회합니다 (Retrieve an invoice by external uid)."""
        result = await db.execute(select(PlanInvoice).where(PlanInvoice.uid == uid))
        return result.scalar_one_or_none()

    async def get_by_period(
        self,
        db: AsyncSession,
        membership_id: UUID,
        period_start: datetime,
    ) -> PlanInvoice | None:
        """구독의 특정 청구 주기 인보이스를 조회합니다.

        Retrieve the invoice of one membership cycle.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            membership_id: 구독 UUID (Membership UUID)
            period_start: 청구 기간 시작 (Cycle start timestamp)

        Returns:
            PlanInvoice | None: 청구서 또는 None (Invoice or None)
        """
        result = await db.execute(
            select(PlanInvoice).where(
                PlanInvoice.membership_id == membership_id,
                PlanInvoice.period_start == period_start,
            )
        )
        return result.scalar_one_or_none()

    async def list_by_membership(
        self,
        db: AsyncSession,
        membership_id: UUID,
    ) -> Sequence[PlanInvoice]:
        """구독의 청구서 목록을 최신 주기 순으로 조회합니다.

        List a membership's invoices, newest cycle first.
        """
        result = await db.execute(
            select(PlanInvoice)
            .where(PlanInvoice.membership_id == membership_id)
            .order_by(PlanInvoice.period_start.desc())
        )
        return result.scalars().all()


# 싱글턴 인스턴스 — Singleton instance
invoice_repository: InvoiceRepository = InvoiceRepository()
