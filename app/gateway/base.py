"""결제 게이트웨이 어댑터 인터페이스.

Payment gateway adapter contract. Billing charges a stored billing key
through any object that implements :class:`PaymentGateway`; the PortOne
client is the production implementation and tests use stubs.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol


# 결제 완료로 간주하는 게이트웨이 결제 상태 — Gateway payment statuses that mean "paid"
PAID_STATUSES: frozenset[str] = frozenset({"PAID", "SUCCEEDED", "PARTIAL_PAID"})

# 아직 결과가 정해지지 않은 결제 상태 — Statuses of a payment still in progress
IN_PROGRESS_STATUSES: frozenset[str] = frozenset({"READY", "PENDING", "PAY_PENDING", "VIRTUAL_ACCOUNT_ISSUED"})


class ChargeStatus:
    """청구 결과 상태 값 (Charge result status values)."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass
class CardMeta:
    """카드 표시 정보 (Card display metadata reported by the gateway)."""

    brand: str | None = None
    bin: str | None = None
    last4: str | None = None
    pg_provider: str | None = None

    def is_empty(self) -> bool:
        return not (self.brand or self.bin or self.last4 or self.pg_provider)


@dataclass
class ChargeResult:
    """게이트웨이 청구 결과.

    Outcome of one charge call.

    Attributes:
        status: SUCCESS | FAILURE
        external_transaction_id: 게이트웨이 거래 아이디 (Gateway transaction id)
        receipt_url: 영수증 URL (Receipt URL, optional)
        error_message: 실패 사유 코드 (Failure reason code, optional)
        raw_body: 응답 원문 (Raw response body, verbatim)
        card: 응답에서 읽은 카드 정보 (Card metadata parsed from the response)
    """

    status: str
    external_transaction_id: str | None = None
    receipt_url: str | None = None
    error_message: str | None = None
    raw_body: str | None = None
    card: CardMeta = field(default_factory=CardMeta)

    @property
    def succeeded(self) -> bool:
        return self.status == ChargeStatus.SUCCESS


@dataclass
class PaymentLookup:
    """게이트웨이 결제 단건 조회 결과.

    Current state of one payment on the gateway side.

    Attributes:
        payment_id: 결제 아이디, 청구서 uid (Payment id, the invoice uid)
        status: 게이트웨이 결제 상태, 없으면 NOT_FOUND
                (Gateway payment status; NOT_FOUND when the gateway has no such payment)
        transaction_id: PG 거래 아이디 (PG transaction id)
        receipt_url: 영수증 URL (Receipt URL)
        raw_body: 응답 원문 (Raw response body, verbatim)
        card: 카드 정보 (Card metadata)
    """

    payment_id: str
    status: str
    transaction_id: str | None = None
    receipt_url: str | None = None
    raw_body: str | None = None
    card: CardMeta = field(default_factory=CardMeta)

    @property
    def paid(self) -> bool:
        return self.status in PAID_STATUSES

    def to_charge_result(self) -> ChargeResult:
        """청구 결과 형태로 변환 (Same outcome, as a charge result)."""
        if self.paid:
            return ChargeResult(
                status=ChargeStatus.SUCCESS,
                external_transaction_id=self.transaction_id or self.payment_id,
                receipt_url=self.receipt_url,
                raw_body=self.raw_body,
                card=self.card,
            )
        return ChargeResult(
            status=ChargeStatus.FAILURE,
            external_transaction_id=self.transaction_id or self.payment_id,
            receipt_url=self.receipt_url,
            error_message=self.status or "UNKNOWN",
            raw_body=self.raw_body,
        )


class PaymentGateway(Protocol):
    """결제 게이트웨이 프로토콜.

    Protocol for payment gateway adapters.

    Implementations must treat ``idempotency_key`` as the payment id on the
    gateway side, so a retried call for the same invoice never charges twice.
    When the gateway rejects a retry because that payment id is already
    paid, ``charge`` reports SUCCESS for the existing payment.
    """

    async def lookup(self, payment_id: str) -> PaymentLookup:
        """결제 아이디로 게이트웨이 결제 상태를 조회합니다.

        Fetch the gateway's current view of a payment.

        Raises:
            GatewayError: 게이트웨이 통신 실패 또는 응답 형식 오류
                          (Transport failure or malformed response)
        """
        ...

    async def charge(
        self,
        token: str,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> ChargeResult:
        """빌링키로 결제를 요청합니다.

        Charge a billing key.

        Args:
            token: 빌링키 (Gateway billing key)
            amount: 청구 금액 (Invoice amount; adapters convert it to their wire format)
            currency: 통화 코드 (Currency code)
            idempotency_key: 멱등 키, 청구서 uid (Idempotency key, the invoice uid)

        Returns:
            ChargeResult: 청구 결과 (Charge outcome)

        Raises:
            GatewayError: 게이트웨이 통신 실패 또는 응답 형식 오류
                          (Transport failure or malformed response)
        """
        ...


class GatewayError(Exception):
    """게이트웨이 호출 실패 (Gateway call failed).

    Attributes:
        reason: 실패 사유 코드 (Reason code stored on the attempt)
        raw_body: 응답 원문, 있으면 (Raw response body, when one was received)
    """

    def __init__(self, reason: str, raw_body: str | None = None) -> None:
        super().__init__(reason)
        self.reason: str = reason
        self.raw_body: str | None = raw_body


class GatewayTimeoutError(GatewayError):
    """게이트웨이 응답 시간 초과 (Gateway did not answer in time)."""

    def __init__(self, raw_body: str | None = None) -> None:
        super().__init__("GATEWAY_TIMEOUT", raw_body)
