"""FastAPI 애플리케이션 엔트리포인트 — 라이프사이클 및 라우터 등록.

FastAPI application entry point — Lifespan (logging, billing scheduler),
health check, and router registration.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.scheduler import BillingScheduler
from app.services.billing_service import billing_orchestrator
from app.utils.logging_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """앱 시작 시 로깅/스케줄러를 켜고 종료 시 스케줄러를 멈춥니다.

    Configure logging and start the billing scheduler on startup; stop it
    on shutdown.
    """
    configure_logging()
    scheduler: BillingScheduler | None = None
    if settings.SCHEDULER_ENABLED:
        scheduler = BillingScheduler(billing_orchestrator)
        scheduler.start()
    app.state.scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()


app: FastAPI = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS 미들웨어 — Cross-Origin Resource Sharing middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """서버 상태 확인 엔드포인트.

    Health check endpoint for load balancers and monitoring.
    """
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# 라우터 등록 — Router registration
# ---------------------------------------------------------------------------
from app.api.admin import admin_router  # noqa: E402
from app.api.webhooks import router as webhooks_router  # noqa: E402

app.include_router(admin_router, prefix="/api/v1/admin")
app.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
