"""알림 레포지토리 — 회원 알림함 DB 쿼리 담당.

Notification Repository — Member inbox queries: newest-first listing,
unread counter, read stamping and retention cleanup of read rows.
"""

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import utcnow
from app.models.notification import Notification
from app.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """알림 레포지토리 (Member inbox repository).

    Extends:
        BaseRepository[Notification]
    """

    def __init__(self) -> None:
        super().__init__(Notification)

    async def get_member_notifications(
        self,
        db: AsyncSession,
        member_id: UUID,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[Sequence[Notification], int]:
        """회원 알림함을 최신순 페이지로 조회합니다.

        One page of a member's inbox, newest first.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            member_id: 수신 회원 UUID (Recipient member UUID)
            page: 1부터 시작하는 페이지 (1-based page)
            per_page: 페이지 크기 (Page size)

        Returns:
            tuple[Sequence[Notification], int]: (현재 페이지, 알림함 전체 건수)
                                                 (Current page, inbox total)
        """
        inbox: Select = (
            select(Notification)
            .where(Notification.member_id == member_id)
            .order_by(Notification.created_at.desc(), Notification.id)
        )
        return await self.get_paginated(db, inbox, page, per_page)

    async def get_unread_count(self, db: AsyncSession, member_id: UUID) -> int:
        """안 읽은 알림 수 (Unread badge count for a member)."""
        unread = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.member_id == member_id,
                Notification.is_read.is_(False),
            )
        )
        return unread.scalar() or 0

    async def mark_read(
        self,
        db: AsyncSession,
        notification_id: UUID,
        member_id: UUID,
    ) -> bool:
        """회원 본인의 알림을 읽음으로 표시하고 읽은 시각을 남깁니다.

        Stamp one of the member's own notifications as read. Another
        member's notification id matches nothing.

        Returns:
            bool: 표시된 행이 있었는지 (Whether a row was stamped)
        """
        stamped = await db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.member_id == member_id)
            .values(is_read=True, read_at=utcnow())
        )
        await db.flush()
        return stamped.rowcount > 0

    async def create_notification(
        self,
        db: AsyncSession,
        member_id: UUID,
        notification_type: str,
        title: str,
        content: str | None = None,
        related_url: str | None = None,
    ) -> Notification:
        """알림 한 건을 알림함에 넣습니다 (Insert one inbox row)."""
        return await self.create(
            db,
            {
                "member_id": member_id,
                "type": notification_type,
                "title": title,
                "content": content,
                "related_url": related_url,
            },
        )

    async def delete_read_before(self, db: AsyncSession, cutoff: datetime) -> int:
        """기준 시각 전에 만들어진 읽은 알림을 지웁니다.

        Purge read notifications created before ``cutoff``; unread ones are
        kept however old they are.

        Returns:
            int: 지운 건수 (Rows purged)
        """
        purged = await db.execute(
            delete(Notification).where(
                Notification.is_read.is_(True),
                Notification.created_at < cutoff,
            )
        )
        await db.flush()
        return purged.rowcount


# 싱글턴 인스턴스 — Singleton instance
notification_repository: NotificationRepository = NotificationRepository()
