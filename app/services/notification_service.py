"""알림 서비스 — 회원 알림함.

Notification Service — Business logic for the member notification centre.
Billing uses ``notify`` after each charge; the scheduler runs
``cleanup_old_notifications`` once a day.
"""

import logging
from datetime import timedelta
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import utcnow
from app.models.notification import Notification, NotificationType
from app.repositories.notification_repository import notification_repository
from app.utils.exceptions import BadRequestError

logger = logging.getLogger(__name__)


class NotificationService:
    """알림 서비스.

    Notification service providing creation, read/unread operations
    and retention cleanup.
    """

    async def notify(
        self,
        db: AsyncSession,
        member_id: UUID,
        notification_type: str,
        title: str,
        content: str | None = None,
        related_url: str | None = None,
    ) -> Notification:
        """회원에게 알림을 생성합니다.

        Create a notification for a member.

        Args:
            member_id: 수신자 UUID (Recipient member UUID)
            notification_type: 알림 유형 (Notification type, see NotificationType)
            title: 알림 제목 (Title)
            content: 알림 내용, 선택 (Body text, optional)
            related_url: 관련 URL, 선택 (Related URL, optional)

        Returns:
            Notification: 알림함에 들어간 행 (The stored inbox row)

        Raises:
            BadRequestError: 알 수 없는 알림 유형일 때 (Unknown notification type)
        """
        if notification_type not in NotificationType.ALL:
            raise BadRequestError(f"Unknown notification type: {notification_type}")
        return await notification_repository.create_notification(
            db,
            member_id=member_id,
            notification_type=notification_type,
            title=title,
            content=content,
            related_url=related_url,
        )

    async def list_for_member(
        self,
        db: AsyncSession,
        member_id: UUID,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[Sequence[Notification], int]:
        """회원의 알림 목록을 페이지네이션하여 조회합니다.

        List paginated notifications for a member, newest first.

        Returns:
            tuple[Sequence[Notification], int]: (현재 페이지, 전체 건수)
        """
        return await notification_repository.get_member_notifications(
            db, member_id, page, per_page
        )

    async def get_unread_count(self, db: AsyncSession, member_id: UUID) -> int:
        """회원의 읽지 않은 알림 수를 조회합니다 (Unread notification count)."""
        return await notification_repository.get_unread_count(db, member_id)

    async def mark_read(
        self,
        db: AsyncSession,
        notification_id: UUID,
        member_id: UUID,
    ) -> bool:
        """회원 본인의 알림 한 건을 읽음으로 표시합니다.

        Returns:
            bool: 처리 성공 여부 (Whether the notification existed for the member)
        """
        return await notification_repository.mark_read(db, notification_id, member_id)

    # --- 보관 기간 정리 (Retention cleanup) ---

    async def cleanup_old_notifications(self, db: AsyncSession, days: int) -> int:
        """보관 기간이 지난 읽은 알림을 삭제합니다.

        Delete read notifications older than ``days`` days.

        Returns:
            int: 삭제된 알림 수 (Count of deleted notifications)
        """
        deleted: int = await notification_repository.delete_read_before(
            db, utcnow() - timedelta(days=days)
        )
        logger.info("Old notifications cleaned up", extra={"deleted": deleted, "retention_days": days})
        return deleted


# 싱글턴 인스턴스 — Singleton instance
notification_service: NotificationService = NotificationService()
