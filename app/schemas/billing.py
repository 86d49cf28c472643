"""플랜/구독/청구 관련 Pydantic 요청/응답 스키마 정의.

Plan, membership and billing Pydantic request/response schema definitions.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# === 플랜 카탈로그 (Plan catalog) 스키마 ===

class PlanPriceResponse(BaseModel):
    """플랜 가격 응답 스키마.

    Active price of a plan for one term and billing mode.

    Attributes:
        id: 가격 UUID (Price identifier)
        term_months: 약정 개월 수 (Term length in months)
        billing_mode: 결제 방식 (Billing mode label)
        amount: 금액 (Charge amount)
        currency: 통화 (Currency code)
    """

    id: str  # 가격 UUID 문자열 (Price UUID as string)
    term_months: int  # 약정 개월 수 (Term months)
    billing_mode: str  # 결제 방식 (Billing mode)
    amount: Decimal  # 금액 (Amount)
    currency: str  # 통화 (Currency code)


class PlanBenefitResponse(BaseModel):
    """플랜 혜택 응답 스키마 (Plan benefit response schema)."""

    price_cap: Decimal | None = None  # 가격 상한 (Price cap, optional)
    note: str | None = None  # 혜택 설명 (Benefit note)


class PlanDetailResponse(BaseModel):
    """플랜 상세 응답 스키마.

    Plan with its display name, benefit and active prices.
    """

    id: str  # 플랜 UUID 문자열 (Plan UUID as string)
    code: str  # 플랜 코드 (Plan code)
    name: str  # 플랜 이름 (Plan display name)
    is_active: bool  # 판매 여부 (Active flag)
    benefit: PlanBenefitResponse | None = None  # 혜택 (Benefit, optional)
    prices: list[PlanPriceResponse] = []  # 활성 가격 목록 (Active prices)


# === 구독/청구 (Membership/Billing) 스키마 ===

class InvoiceResponse(BaseModel):
    """청구서 응답 스키마.

    Invoice response schema.

    Attributes:
        uid: 외부 식별자 (External invoice identifier)
        membership_id: 구독 UUID (Membership identifier)
        period_start: 청구 기간 시작 (Cycle start)
        period_end: 청구 기간 종료 (Cycle end)
        amount: 청구 금액 (Amount)
        currency: 통화 (Currency code)
        status: 청구 상태 (PENDING | PAID | FAILED)
        next_attempt_at: 다음 재시도 가능 일시 (Earliest retry time)
        paid_at: 결제 완료 일시 (Settlement time)
    """

    uid: str
    membership_id: str
    period_start: datetime
    period_end: datetime
    amount: Decimal
    currency: str
    status: str
    next_attempt_at: datetime | None = None
    paid_at: datetime | None = None


class AttemptResponse(BaseModel):
    """결제 시도 응답 스키마.

    Attempt response schema. ``raw_response`` is returned verbatim.
    """

    id: str  # 시도 UUID 문자열 (Attempt UUID as string)
    attempt_no: int  # 청구서 내 순번 (Sequence within the invoice)
    attempted_at: datetime  # 시도 일시 (Attempt time)
    result: str  # SUCCESS | FAILURE | PENDING
    failure_reason: str | None = None  # 실패 사유 (Failure reason)
    external_attempt_id: str | None = None  # 게이트웨이 거래 아이디 (Gateway transaction id)
    receipt_url: str | None = None  # 영수증 URL (Receipt URL)
    raw_response: str | None = None  # 응답 원문 (Raw gateway body)


class BillingRunRequest(BaseModel):
    """청구 실행 요청 스키마.

    Manual billing tick request. ``as_of`` defaults to the current time.
    """

    as_of: datetime | None = None  # 기준 시각 (Cut-off timestamp, optional)


class BillingRunResponse(BaseModel):
    """청구 실행 결과 응답 스키마 (Billing tick summary response)."""

    as_of: datetime  # 기준 시각 (Cut-off timestamp used)
    processed: int  # 처리한 구독 수 (Memberships processed)
    succeeded: int  # 결제 성공 수 (Successful charges)
    failed: int  # 결제 실패 수 (Failed charges)
    skipped: int  # 건너뛴 수 (Skipped memberships)
    errors: int  # 저장 오류 수 (Persistence errors)


# === 게이트웨이 통지/조회 (Gateway webhook/lookup) 스키마 ===

class PgWebhookRequest(BaseModel):
    """PG 결제 통지 요청 스키마.

    Payment notification pushed by the PG. Field names follow the gateway's
    camelCase payload; snake_case names are accepted too.
    """

    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(alias="paymentId")  # 결제 아이디 = 청구서 uid (Invoice uid)
    status: str  # 결제 상태 (PAID, FAILED, ...)
    transaction_uid: str | None = Field(default=None, alias="transactionUid")  # PG 거래 아이디
    receipt_url: str | None = Field(default=None, alias="receiptUrl")  # 영수증 URL
    fail_reason: str | None = Field(default=None, alias="failReason")  # 실패 사유
    raw_json: str | None = Field(default=None, alias="rawJson")  # 원문, 없으면 요청 본문


class PgWebhookResponse(BaseModel):
    """PG 결제 통지 처리 결과 (IGNORED | DUPLICATE | SETTLED | RECORDED)."""

    outcome: str


class PaymentLookupResponse(BaseModel):
    """게이트웨이 결제 조회 응답 스키마.

    Gateway view of one payment. ``raw_response`` is returned verbatim.
    """

    payment_id: str  # 결제 아이디 (Payment id)
    status: str  # 게이트웨이 결제 상태, 없으면 NOT_FOUND (Gateway status)
    paid: bool  # 결제 완료 여부 (Whether the status counts as paid)
    transaction_id: str | None = None  # PG 거래 아이디 (PG transaction id)
    receipt_url: str | None = None  # 영수증 URL (Receipt URL)
    raw_response: str | None = None  # 응답 원문 (Raw gateway body)
