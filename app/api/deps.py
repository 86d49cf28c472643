"""FastAPI 의존성 주입 모듈 — 정기결제 구성요소 제공.

FastAPI dependency injection module — Provides the billing orchestrator to
routers. Tests override :func:`get_billing_orchestrator` through
``app.dependency_overrides`` to swap in a stub gateway.
"""

from app.services.billing_service import BillingOrchestrator, billing_orchestrator


async def get_billing_orchestrator() -> BillingOrchestrator:
    """애플리케이션 정기결제 오케스트레이터를 반환합니다.

    Return the application-wide billing orchestrator.

    Returns:
        BillingOrchestrator: PortOne 게이트웨이를 사용하는 오케스트레이터
                             (Orchestrator wired to the PortOne gateway)
    """
    return billing_orchestrator
