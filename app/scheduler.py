"""백그라운드 스케줄러 — 정기결제 틱과 알림 정리 작업.

Background scheduler — Fires the billing tick on a fixed interval and the
read-notification cleanup once a day. Runs as an asyncio task started from
the application lifespan.
"""

import asyncio
import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import async_session, utcnow
from app.services.billing_service import BillingOrchestrator, TickSummary
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)

# 알림 정리 주기 — Notification cleanup period
CLEANUP_PERIOD: timedelta = timedelta(days=1)


async def run_billing_job(orchestrator: BillingOrchestrator, now: datetime | None = None) -> TickSummary:
    """정기결제 틱을 1회 실행합니다 (Run one billing tick)."""
    return await orchestrator.run_tick(now)


async def run_cleanup_job(
    session_factory: async_sessionmaker[AsyncSession],
    retention_days: int,
) -> int:
    """보관 기간이 지난 읽은 알림을 삭제합니다 (Delete expired read notifications)."""
    async with session_factory() as db:
        deleted: int = await notification_service.cleanup_old_notifications(db, retention_days)
        await db.commit()
    return deleted


class BillingScheduler:
    """정기결제 스케줄러.

    Periodic driver for the billing tick and notification cleanup. The only
    thing it exposes to billing is "run now".

    Args:
        orchestrator: 정기결제 오케스트레이터 (Billing orchestrator)
        interval: 틱 주기 초 (Tick interval in seconds)
        retention_days: 읽은 알림 보관 일수 (Days to keep read notifications)
        session_factory: 정리 작업용 세션 팩토리 (Session factory for cleanup)
    """

    def __init__(
        self,
        orchestrator: BillingOrchestrator,
        interval: float | None = None,
        retention_days: int | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.orchestrator: BillingOrchestrator = orchestrator
        self.interval: float = max(1.0, interval or settings.BILLING_TICK_INTERVAL_SECONDS)
        self.retention_days: int = retention_days or settings.NOTIFICATION_RETENTION_DAYS
        self.session_factory: async_sessionmaker[AsyncSession] = session_factory or async_session
        self._stop: asyncio.Event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last_cleanup: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """스케줄러를 시작합니다 (Start the loop; no-op when already running)."""
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="billing-scheduler")
        logger.info("Billing scheduler started", extra={"interval_seconds": self.interval})

    async def stop(self) -> None:
        """스케줄러를 멈추고 진행 중인 작업이 끝날 때까지 기다립니다.

        Stop the loop and wait for the current run to finish.
        """
        if self._task is None:
            return
        self._stop.set()
        await self._task
        self._task = None
        logger.info("Billing scheduler stopped")

    async def run_once(self, now: datetime | None = None) -> TickSummary:
        """청구 틱 1회와 필요한 경우 알림 정리를 실행합니다.

        Run the billing tick now, then the cleanup when a day has passed
        since the last one.
        """
        current: datetime = now or utcnow()
        summary: TickSummary = await run_billing_job(self.orchestrator, current)
        if self._last_cleanup is None or current - self._last_cleanup >= CLEANUP_PERIOD:
            await run_cleanup_job(self.session_factory, self.retention_days)
            self._last_cleanup = current
        return summary

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception:
                # 다음 주기까지 유지 — Keep the schedule after a failed run
                logger.exception("Scheduled run failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
