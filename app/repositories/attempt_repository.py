"""결제 시도 레포지토리 — 추가 전용 시도 기록 DB 쿼리 담당.

Attempt Repository — Insert and read queries for the append-only attempt
ledger. No update or delete query exists for this table.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import AttemptResult, PlanAttempt
from app.repositories.base import BaseRepository


class AttemptRepository(BaseRepository[PlanAttempt]):
    """결제 시도 레포지토리.

    Attempt repository. Only ``create`` writes to the table.

    Extends:
        BaseRepository[PlanAttempt]
    """

    def __init__(self) -> None:
        super().__init__(PlanAttempt)

    async def next_attempt_no(
        self,
        db: AsyncSession,
        invoice_id: UUID,
    ) -> int:
        """청구서의 다음 시도 순번을 계산합니다 (Next 1-based attempt number)."""
        result = await db.execute(
            select(func.max(PlanAttempt.attempt_no)).where(PlanAttempt.invoice_id == invoice_id)
        )
        return (result.scalar() or 0) + 1

    async def count_failures(
        self,
        db: AsyncSession,
        invoice_id: UUID,
    ) -> int:
        """청구서의 실패 시도 수를 조회합니다 (Failed attempts on an invoice)."""
        result = await db.execute(
            select(func.count())
            .select_from(PlanAttempt)
            .where(
                PlanAttempt.invoice_id == invoice_id,
                PlanAttempt.result == AttemptResult.FAILURE,
            )
        )
        return result.scalar() or 0

    async def list_by_invoice(
        self,
        db: AsyncSession,
        invoice_id: UUID,
    ) -> Sequence[PlanAttempt]:
        """청구서의 시도 기록을 최신순으로 조회합니다.

        List an invoice's attempts, newest first.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            invoice_id: 청구서 UUID (Invoice UUID)

        Returns:
            Sequence[PlanAttempt]: 시도 기록 목록 (Attempts, newest first)
        """
        result = await db.execute(
            select(PlanAttempt)
            .where(PlanAttempt.invoice_id == invoice_id)
            .order_by(PlanAttempt.attempted_at.desc(), PlanAttempt.attempt_no.desc())
        )
        return result.scalars().all()


# 싱글턴 인스턴스 — Singleton instance
attempt_repository: AttemptRepository = AttemptRepository()
