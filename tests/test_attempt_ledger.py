"""결제 시도 원장 테스트.

Attempt ledger tests — Append-only inserts, per-invoice numbering,
newest-first history and failure counting.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import AttemptResult, InvoiceStatus, PlanInvoice
from app.services.attempt_service import attempt_service
from tests.conftest import FEB_1, MAR_1


@pytest_asyncio.fixture
async def invoice(db: AsyncSession, membership):
    """2024-02 주기 청구서를 생성합니다."""
    inv = PlanInvoice(
        uid=uuid.uuid4().hex,
        membership_id=membership.id,
        period_start=FEB_1,
        period_end=MAR_1,
        amount=Decimal("9900"),
        currency="KRW",
        status=InvoiceStatus.PENDING,
    )
    db.add(inv)
    await db.flush()
    await db.refresh(inv)
    return inv


class TestRecordAttempt:
    """시도 기록 테스트."""

    async def test_attempt_numbers_increase(self, db: AsyncSession, invoice):
        """청구서 내 순번은 1부터 증가."""
        first = await attempt_service.record_attempt(
            db, invoice.id, AttemptResult.FAILURE, reason="CARD_DECLINED", raw_response="{}"
        )
        second = await attempt_service.record_attempt(
            db, invoice.id, AttemptResult.SUCCESS, external_attempt_id="tx-2", raw_response="{}"
        )

        assert (first.attempt_no, second.attempt_no) == (1, 2)

    async def test_history_is_newest_first(self, db: AsyncSession, invoice):
        """이력은 시도 일시 내림차순."""
        older = await attempt_service.record_attempt(
            db, invoice.id, AttemptResult.FAILURE, reason="CARD_DECLINED", attempted_at=FEB_1
        )
        newer = await attempt_service.record_attempt(
            db, invoice.id, AttemptResult.SUCCESS, attempted_at=FEB_1 + timedelta(hours=1)
        )

        history = await attempt_service.history(db, invoice.id)

        assert [a.id for a in history] == [newer.id, older.id]

    async def test_count_failures(self, db: AsyncSession, invoice):
        for _ in range(2):
            await attempt_service.record_attempt(db, invoice.id, AttemptResult.FAILURE, reason="CARD_DECLINED")
        await attempt_service.record_attempt(db, invoice.id, AttemptResult.PENDING)

        assert await attempt_service.count_failures(db, invoice.id) == 2

    async def test_long_reason_is_truncated(self, db: AsyncSession, invoice):
        attempt = await attempt_service.record_attempt(db, invoice.id, AttemptResult.FAILURE, reason="X" * 800)
        assert len(attempt.failure_reason) == 500

    async def test_raw_response_is_untouched(self, db: AsyncSession, invoice):
        """원문은 파싱 없이 그대로 보관."""
        raw = "not json at all\n\t{ \"half\": "
        attempt = await attempt_service.record_attempt(db, invoice.id, AttemptResult.FAILURE, raw_response=raw)

        await db.refresh(attempt)
        assert attempt.raw_response == raw

    async def test_history_for_unknown_invoice(self, db: AsyncSession):
        assert list(await attempt_service.history(db, uuid.uuid4())) == []
