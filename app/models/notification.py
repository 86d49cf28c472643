"""알림 관련 SQLAlchemy ORM 모델 정의.

Notification SQLAlchemy ORM model definitions.
Notification-centre rows delivered to members (payment results, notices,
system messages).

Tables:
    - notifications: 회원 알림 (Member notifications)
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UTCDateTime, utcnow


class NotificationType:
    """알림 유형 값 (Notification type values)."""

    SYSTEM = "SYSTEM"  # 시스템
    BOARD = "BOARD"  # 게시판
    MEMBER = "MEMBER"  # 멤버
    PRODUCT = "PRODUCT"  # 상품
    ADMIN = "ADMIN"  # 관리자
    EVENT = "EVENT"  # 이벤트
    WARNING = "WARNING"  # 경고
    INFO = "INFO"  # 정보

    ALL = (SYSTEM, BOARD, MEMBER, PRODUCT, ADMIN, EVENT, WARNING, INFO)


class Notification(Base):
    """알림 모델 — 회원에게 전달되는 알림.

    Notification model — A message delivered to a member's notification centre.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        member_id: 수신자 FK (Recipient member)
        type: 알림 유형 (Notification type, see NotificationType)
        title: 알림 제목 (Title)
        content: 알림 내용 (Body text)
        related_url: 관련 URL (Page to open on click, optional)
        is_read: 읽음 여부 (Whether the member has read it)
        read_at: 읽은 일시 (Read timestamp)
        created_at: 생성 일시 UTC (Creation timestamp)
    """

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # 수신자 FK — 회원 삭제 시 알림도 삭제 (CASCADE)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    related_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
