"""결제 게이트웨이 패키지 (Payment gateway adapters)."""

from app.gateway.base import (
    CardMeta,
    ChargeResult,
    ChargeStatus,
    GatewayError,
    GatewayTimeoutError,
    PaymentGateway,
)
from app.gateway.portone import PortOneGateway

__all__ = [
    "CardMeta",
    "ChargeResult",
    "ChargeStatus",
    "GatewayError",
    "GatewayTimeoutError",
    "PaymentGateway",
    "PortOneGateway",
]
