"""관리자 정기결제 라우터 — 청구 실행 및 청구/시도 내역 조회 API.

Admin Billing Router — Run a billing tick on demand and inspect invoices and
their attempt history for support and dispute review.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_billing_orchestrator
from app.database import get_db
from app.gateway.base import GatewayError, PaymentLookup
from app.models.subscription import PlanAttempt, PlanInvoice
from app.schemas.billing import (
    AttemptResponse,
    BillingRunRequest,
    BillingRunResponse,
    InvoiceResponse,
    PaymentLookupResponse,
)
from app.services.attempt_service import attempt_service
from app.services.billing_service import BillingOrchestrator, TickSummary
from app.services.membership_service import membership_service
from app.utils.exceptions import BadGatewayError

router: APIRouter = APIRouter()


def _invoice_to_response(invoice: PlanInvoice) -> InvoiceResponse:
    return InvoiceResponse(
        uid=invoice.uid,
        membership_id=str(invoice.membership_id),
        period_start=invoice.period_start,
        period_end=invoice.period_end,
        amount=invoice.amount,
        currency=invoice.currency,
        status=invoice.status,
        next_attempt_at=invoice.next_attempt_at,
        paid_at=invoice.paid_at,
    )


def _attempt_to_response(attempt: PlanAttempt) -> AttemptResponse:
    return AttemptResponse(
        id=str(attempt.id),
        attempt_no=attempt.attempt_no,
        attempted_at=attempt.attempted_at,
        result=attempt.result,
        failure_reason=attempt.failure_reason,
        external_attempt_id=attempt.external_attempt_id,
        receipt_url=attempt.receipt_url,
        raw_response=attempt.raw_response,
    )


@router.post("/run", response_model=BillingRunResponse)
async def run_billing(
    orchestrator: Annotated[BillingOrchestrator, Depends(get_billing_orchestrator)],
    data: BillingRunRequest | None = None,
) -> BillingRunResponse:
    """정기결제 틱을 즉시 실행합니다.

    Run a billing tick now. Each membership commits in its own transaction,
    so this route does not commit anything itself.

    Args:
        orchestrator: 정기결제 오케스트레이터 (Billing orchestrator)
        data: 기준 시각, 선택 (Optional cut-off timestamp)

    Returns:
        BillingRunResponse: 처리 결과 요약 (Tick summary)
    """
    summary: TickSummary = await orchestrator.run_tick(data.as_of if data else None)
    return BillingRunResponse(
        as_of=summary.as_of,
        processed=summary.processed,
        succeeded=summary.succeeded,
        failed=summary.failed,
        skipped=summary.skipped,
        errors=summary.errors,
    )


@router.get("/invoices/{uid}/attempts", response_model=list[AttemptResponse])
async def list_invoice_attempts(
    uid: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[AttemptResponse]:
    """청구서의 결제 시도 내역을 최신순으로 조회합니다.

    List an invoice's attempts, newest first, with raw gateway bodies.

    Raises:
        NotFoundError: 청구서를 찾을 수 없을 때 (Invoice not found)
    """
    invoice: PlanInvoice = await membership_service.get_invoice_by_uid(db, uid)
    attempts = await attempt_service.history(db, invoice.id)
    return [_attempt_to_response(a) for a in attempts]


@router.get("/memberships/{membership_id}/invoices", response_model=list[InvoiceResponse])
async def list_membership_invoices(
    membership_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[InvoiceResponse]:
    """구독의 청구서 목록을 최신 주기 순으로 조회합니다.

    List a membership's invoices, newest cycle first.

    Raises:
        NotFoundError: 구독을 찾을 수 없을 때 (Membership not found)
    """
    invoices = await membership_service.list_invoices(db, membership_id)
    return [_invoice_to_response(i) for i in invoices]


@router.get("/payments/{payment_id}", response_model=PaymentLookupResponse)
async def get_gateway_payment(
    payment_id: str,
    orchestrator: Annotated[BillingOrchestrator, Depends(get_billing_orchestrator)],
) -> PaymentLookupResponse:
    """게이트웨이의 결제 상태를 그대로 조회합니다.

    Look a payment up on the gateway (payment id = invoice uid). Nothing is
    written; use it to check an invoice whose last attempt timed out.

    Raises:
        BadGatewayError: 게이트웨이 호출 실패 (Gateway call failed)
    """
    try:
        payment: PaymentLookup = await orchestrator.gateway.lookup(payment_id)
    except GatewayError as exc:
        raise BadGatewayError(f"Payment lookup failed: {exc.reason}") from exc
    return PaymentLookupResponse(
        payment_id=payment.payment_id,
        status=payment.status,
        paid=payment.paid,
        transaction_id=payment.transaction_id,
        receipt_url=payment.receipt_url,
        raw_response=payment.raw_body,
    )
