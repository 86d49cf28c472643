"""데이터베이스 연결 모듈.

Async SQLAlchemy engine and session factory for the billing database
(PostgreSQL via asyncpg in production), plus the UTC timestamp column
type every model uses.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from app.config import settings

# 엔진 — 풀에서 꺼낼 때 연결 확인 (pre-ping on checkout)
engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

# 세션 팩토리 — 커밋 후에도 속성 유지 (attributes survive commit)
async_session: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def utcnow() -> datetime:
    """현재 UTC 시각 (Current timezone-aware UTC time)."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """naive 시각은 UTC로 간주하고, aware 시각은 UTC로 변환합니다.

    Treat naive datetimes as UTC and convert aware ones to UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """항상 UTC aware datetime을 반환하는 컬럼 타입.

    Timestamp column type that always binds and returns timezone-aware UTC
    datetimes, including on backends that drop the offset (SQLite).
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)


class Base(DeclarativeBase):
    """모든 ORM 모델의 선언적 베이스 (Declarative base for every model)."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """요청마다 세션을 하나 열고 응답 후 닫는 FastAPI 의존성.

    Request-scoped session dependency; routes decide when to commit.
    """
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
