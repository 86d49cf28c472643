"""회원 관련 SQLAlchemy ORM 모델 정의.

Member SQLAlchemy ORM model definitions.
Only the read-only directory view used by billing is modelled here;
signup, login and profile management live in the member subsystem.

Tables:
    - members: 회원 (Members who can subscribe to plans)
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UTCDateTime, utcnow


class Member(Base):
    """회원 모델 — 구독/결제 주체.

    Member model — The subject of subscriptions and payment methods.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        mid: 로그인 아이디 (Login id, globally unique)
        name: 표시 이름 (Display name used on receipts and notifications)
        email: 이메일 (Email address, optional)
        created_at: 가입 일시 UTC (Signup timestamp)
    """

    __tablename__ = "members"

    # 회원 고유 식별자 — Member unique identifier (UUID v4, auto-generated)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # 로그인 아이디 — Login id (전역 고유, globally unique)
    mid: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    # 표시 이름 — Display name
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # 이메일 — Email address (optional)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # 가입 일시 — Signup timestamp (UTC)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
