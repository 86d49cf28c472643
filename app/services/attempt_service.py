"""결제 시도 기록 서비스 — 추가 전용 감사 원장.

Attempt Ledger Service — Append-only audit trail of charge attempts.
Rows are inserted once; nothing in this service updates or deletes them.
"""

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import utcnow
from app.models.subscription import PlanAttempt
from app.repositories.attempt_repository import attempt_repository


class AttemptService:
    """결제 시도 기록 서비스 (Attempt ledger service)."""

    async def record_attempt(
        self,
        db: AsyncSession,
        invoice_id: UUID,
        result: str,
        reason: str | None = None,
        external_attempt_id: str | None = None,
        receipt_url: str | None = None,
        raw_response: str | None = None,
        attempted_at: datetime | None = None,
    ) -> PlanAttempt:
        """결제 시도를 기록합니다.

        Append one attempt to an invoice's ledger. ``raw_response`` is stored
        exactly as given.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            invoice_id: 청구서 UUID (Invoice UUID)
            result: 결과 (SUCCESS | FAILURE | PENDING)
            reason: 실패 사유, 선택 (Failure reason code, optional)
            external_attempt_id: 게이트웨이 거래 아이디, 선택 (Gateway transaction id)
            receipt_url: 영수증 URL, 선택 (Receipt URL)
            raw_response: 게이트웨이 응답 원문, 선택 (Raw gateway body)
            attempted_at: 시도 일시, 생략 시 현재 (Attempt time, defaults to now)

        Returns:
            PlanAttempt: 기록된 시도 (Recorded attempt)
        """
        attempt_no: int = await attempt_repository.next_attempt_no(db, invoice_id)
        return await attempt_repository.create(
            db,
            {
                "invoice_id": invoice_id,
                "attempt_no": attempt_no,
                "attempted_at": attempted_at or utcnow(),
                "result": result,
                "failure_reason": reason[:500] if reason else None,
                "external_attempt_id": external_attempt_id,
                "receipt_url": receipt_url,
                "raw_response": raw_response,
            },
        )

    async def history(self, db: AsyncSession, invoice_id: UUID) -> Sequence[PlanAttempt]:
        """청구서의 시도 기록을 최신순으로 조회합니다 (Newest first)."""
        return await attempt_repository.list_by_invoice(db, invoice_id)

    async def count_failures(self, db: AsyncSession, invoice_id: UUID) -> int:
        """청구서의 실패 시도 수 (Failed attempts on an invoice)."""
        return await attempt_repository.count_failures(db, invoice_id)


# 싱글턴 인스턴스 — Singleton instance
attempt_service: AttemptService = AttemptService()
