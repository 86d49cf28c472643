"""PortOne V2 결제 게이트웨이 클라이언트.

PortOne V2 payment gateway client — charges stored billing keys through
``POST /payments/{paymentId}/billing-key`` and reads payment state through
``GET /payments/{paymentId}``. The invoice uid is sent as the payment id, so
PortOne rejects a second charge for the same invoice; that rejection is
resolved by looking the payment up.
"""

import json
import logging
from decimal import Decimal
from typing import Any

import httpx

from app.config import settings
from app.gateway.base import (
    CardMeta,
    ChargeResult,
    ChargeStatus,
    GatewayError,
    GatewayTimeoutError,
    PaymentLookup,
)

logger = logging.getLogger(__name__)

# 이미 결제된 결제 아이디로 재요청 시 오류 유형 — Error types for a payment id that is already paid
ALREADY_PAID_TYPES: frozenset[str] = frozenset({"ALREADY_PAID", "PAYMENT_ALREADY_PAID"})

# 조회 대상 결제 없음 — Error types for an unknown payment id
NOT_FOUND_TYPES: frozenset[str] = frozenset({"PAYMENT_NOT_FOUND", "NOT_FOUND"})


def _text(value: Any) -> str | None:
    """빈 문자열은 None으로 (Blank strings become None)."""
    if value is None:
        return None
    text: str = str(value).strip()
    return text or None


def extract_card_meta(payload: dict[str, Any]) -> CardMeta:
    """응답 JSON에서 카드 표시 정보를 읽습니다.

    Read card display metadata from a payment payload. Both the nested
    ``method.card`` shape and a flat ``card`` object are accepted.
    """
    payment: dict[str, Any] = payload.get("payment") or payload
    method_card: dict[str, Any] = (payment.get("method") or {}).get("card") or {}
    flat_card: dict[str, Any] = payment.get("card") or {}

    return CardMeta(
        brand=_text(method_card.get("brand")) or _text(flat_card.get("brand")),
        bin=_text(method_card.get("bin")) or _text(flat_card.get("bin")),
        last4=_text((method_card.get("number") or {}).get("last4")) or _text(flat_card.get("last4")),
        pg_provider=_text(payment.get("pgProvider")) or _text(payment.get("pg")),
    )


def _error_type(payload: dict[str, Any], status_code: int) -> str:
    # PortOne 오류 응답 — {"type": "...", "message": "..."}
    return _text(payload.get("type")) or _text(payload.get("code")) or f"HTTP_{status_code}"


def read_payment(payload: dict[str, Any], raw_body: str, payment_id: str) -> PaymentLookup:
    """결제 객체 JSON을 조회 결과로 읽습니다.

    Read a PortOne payment object (bare, or wrapped in ``payment``).
    """
    payment: dict[str, Any] = payload.get("payment") or payload
    status: str = (_text(payment.get("status")) or "").upper()
    # 빌링키 결제 응답은 status 없이 paidAt만 주기도 함 — paidAt alone means paid
    if not status and _text(payment.get("paidAt")):
        status = "PAID"

    return PaymentLookup(
        payment_id=payment_id,
        status=status,
        transaction_id=_text(payment.get("pgTxId")) or _text(payment.get("id")) or payment_id,
        receipt_url=_text(payment.get("receiptUrl")) or _text((payment.get("receipt") or {}).get("url")),
        raw_body=raw_body,
        card=extract_card_meta(payload),
    )


class PortOneGateway:
    """PortOne V2 게이트웨이 어댑터.

    PortOne V2 adapter implementing :class:`app.gateway.base.PaymentGateway`.

    Args:
        api_secret: V2 API 시크릿 (V2 API secret)
        store_id: 상점 아이디 (Store id)
        base_url: API 기본 URL (API base URL)
        channel_key: 채널 키, 선택 (Channel key, optional)
        is_test: 테스트 결제 여부 (Sandbox flag)
        order_name: 주문명 (Order name)
        timeout: HTTP 타임아웃 초 (HTTP timeout in seconds)
        transport: httpx 전송 계층, 테스트용 (Custom httpx transport, for tests)
    """

    def __init__(
        self,
        api_secret: str | None = None,
        store_id: str | None = None,
        base_url: str | None = None,
        channel_key: str | None = None,
        is_test: bool | None = None,
        order_name: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_secret: str = api_secret if api_secret is not None else settings.PORTONE_API_SECRET
        self.store_id: str = store_id if store_id is not None else settings.PORTONE_STORE_ID
        self.base_url: str = (base_url or settings.PORTONE_BASE_URL).rstrip("/")
        self.channel_key: str = channel_key if channel_key is not None else settings.PORTONE_CHANNEL_KEY
        self.is_test: bool = settings.PORTONE_IS_TEST if is_test is None else is_test
        self.order_name: str = order_name or settings.PORTONE_ORDER_NAME
        self.timeout: float = timeout or settings.BILLING_GATEWAY_TIMEOUT_SECONDS
        self._transport: httpx.AsyncBaseTransport | None = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"PortOne {self.api_secret}",
            "Content-Type": "application/json",
        }

    def _build_body(self, token: str, amount: Decimal, currency: str) -> dict[str, Any]:
        body: dict[str, Any] = {
            "billingKey": token,
            "orderName": self.order_name,
            "amount": {"total": int(amount)},
            "currency": currency,
            "isTest": self.is_test,
        }
        # 상점 아이디 고정 — Pin the store when configured
        if self.store_id:
            body["storeId"] = self.store_id
        if self.channel_key:
            body["channelKey"] = self.channel_key
        return body

    async def _send(self, method: str, url: str, **kwargs: Any) -> tuple[httpx.Response, dict[str, Any]]:
        """요청을 보내고 JSON 객체 응답을 돌려줍니다.

        Send one request and return the response with its JSON object body.

        Raises:
            GatewayTimeoutError: 응답 시간 초과 (Timed out)
            GatewayError: 통신 실패 또는 JSON 객체가 아닌 응답 (Transport failure or non-object body)
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response: httpx.Response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as exc:
            raise GatewayTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise GatewayError("GATEWAY_UNREACHABLE") from exc

        try:
            payload: Any = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise GatewayError("MALFORMED_RESPONSE", response.text) from exc
        if not isinstance(payload, dict):
            raise GatewayError("MALFORMED_RESPONSE", response.text)
        return response, payload

    async def charge(
        self,
        token: str,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> ChargeResult:
        """빌링키로 결제를 요청합니다.

        Charge a billing key. Declines come back as FAILURE results carrying
        the gateway's reason code; transport errors and unreadable responses
        raise :class:`GatewayError`. A rejection because the payment id is
        already paid (an earlier try that timed out on our side) is checked
        against ``GET /payments/{id}`` and reported as that payment's outcome.

        Args:
            token: 빌링키 (Billing key)
            amount: 금액, 원 단위 정수로 전송 (Amount, sent as a whole number)
            currency: 통화 코드 (Currency code)
            idempotency_key: 결제 아이디로 쓰이는 청구서 uid (Invoice uid, used as paymentId)

        Returns:
            ChargeResult: 청구 결과, raw_body는 응답 원문 그대로 (Outcome with verbatim body)

        Raises:
            GatewayTimeoutError: 응답 시간 초과 (Timed out)
            GatewayError: 통신 실패 또는 JSON이 아닌 응답 (Transport failure or non-JSON body)
        """
        response, payload = await self._send(
            "POST",
            f"{self.base_url}/payments/{idempotency_key}/billing-key",
            json=self._build_body(token, amount, currency),
        )

        if response.is_error:
            reason: str = _error_type(payload, response.status_code)
            logger.info(
                "PortOne charge rejected",
                extra={"payment_id": idempotency_key, "status_code": response.status_code, "reason": reason},
            )
            if reason in ALREADY_PAID_TYPES:
                existing: PaymentLookup = await self.lookup(idempotency_key)
                if existing.paid:
                    logger.info("PortOne payment already paid", extra={"payment_id": idempotency_key})
                    return existing.to_charge_result()
            return ChargeResult(
                status=ChargeStatus.FAILURE,
                external_transaction_id=idempotency_key,
                error_message=reason,
                raw_body=response.text,
            )

        return read_payment(payload, response.text, idempotency_key).to_charge_result()

    async def lookup(self, payment_id: str) -> PaymentLookup:
        """결제 단건을 조회합니다.

        Fetch a payment by id. An unknown payment id comes back with status
        ``NOT_FOUND`` rather than raising.

        Raises:
            GatewayTimeoutError: 응답 시간 초과 (Timed out)
            GatewayError: 통신 실패, 그 밖의 오류 응답 (Transport failure or other error response)
        """
        params: dict[str, str] = {"storeId": self.store_id} if self.store_id else {}
        response, payload = await self._send("GET", f"{self.base_url}/payments/{payment_id}", params=params)

        if response.is_error:
            reason: str = _error_type(payload, response.status_code)
            if response.status_code == 404 or reason in NOT_FOUND_TYPES:
                return PaymentLookup(payment_id=payment_id, status="NOT_FOUND", raw_body=response.text)
            raise GatewayError(reason, response.text)

        return read_payment(payload, response.text, payment_id)
