"""PG 웹훅 라우터 — 게이트웨이 결제 통지 수신.

PG Webhook Router — Receives payment notifications pushed by the gateway
and applies them to the matching invoice. Unknown payment ids are
acknowledged with 200 so the gateway stops redelivering them.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_billing_orchestrator
from app.database import get_db
from app.schemas.billing import PgWebhookRequest, PgWebhookResponse
from app.services.billing_service import BillingOrchestrator, PaymentEvent

router: APIRouter = APIRouter()


@router.post("/pg", response_model=PgWebhookResponse)
async def receive_pg_webhook(
    data: PgWebhookRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    orchestrator: Annotated[BillingOrchestrator, Depends(get_billing_orchestrator)],
) -> PgWebhookResponse:
    """PG 결제 통지를 청구서 시도 기록에 반영합니다.

    Record a PG payment notification against its invoice; a PAID
    notification settles the invoice. The orchestrator commits.
    """
    raw_body: str = data.raw_json or (await request.body()).decode("utf-8", errors="replace")
    outcome: str = await orchestrator.apply_payment_event(
        db,
        PaymentEvent(
            payment_id=data.payment_id,
            status=data.status,
            transaction_id=data.transaction_uid,
            receipt_url=data.receipt_url,
            failure_reason=data.fail_reason,
            raw_body=raw_body,
        ),
    )
    return PgWebhookResponse(outcome=outcome)
