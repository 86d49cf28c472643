"""관리자 API 라우터 패키지 — 모든 관리자 엔드포인트 통합.

Admin API Router package — Aggregates all admin-facing endpoints
into a single router for inclusion in the FastAPI application.

Included routers:
    - plans: 플랜 카탈로그 조회 (Plan catalog views)
    - billing: 정기결제 실행 및 청구/시도 내역 (Billing runs, invoices, attempts)
"""

from fastapi import APIRouter

from app.api.admin.billing import router as billing_router
from app.api.admin.plans import router as plans_router

admin_router: APIRouter = APIRouter()

# ---------------------------------------------------------------------------
# 라우터 등록 — Register routers
# ---------------------------------------------------------------------------
admin_router.include_router(plans_router, prefix="/plans", tags=["Plans"])
admin_router.include_router(billing_router, prefix="/billing", tags=["Billing"])
