"""기본 레포지토리 — 모든 레포지토리의 부모 클래스.

Base Repository — Parent class for the catalog, payment method, membership,
invoice, attempt and notification repositories.
Repositories only flush; commit/rollback belongs to the caller (routers,
the billing orchestrator, scripts).

Usage:
    class PlanRepository(BaseRepository[Plan]):
        def __init__(self) -> None:
            super().__init__(Plan)
"""

from typing import Any, Generic, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import Select, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import Base

# 제네릭 타입 변수 — UUID 기본키를 가진 SQLAlchemy 모델
# Generic type variable for a SQLAlchemy model with a UUID primary key
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """제네릭 레포지토리.

    Generic repository with lookup, row locking, pagination and write helpers.

    Attributes:
        model: SQLAlchemy 모델 클래스 (The SQLAlchemy model class)
    """

    def __init__(self, model: type[ModelType]) -> None:
        self.model: type[ModelType] = model

    async def get_by_id(
        self,
        db: AsyncSession,
        record_id: UUID,
    ) -> ModelType | None:
        """기본키로 레코드 하나를 읽습니다 (identity map first, then the database)."""
        return await db.get(self.model, record_id)

    async def lock_by_id(
        self,
        db: AsyncSession,
        record_id: UUID,
    ) -> ModelType | None:
        """행 잠금(SELECT ... FOR UPDATE)과 함께 레코드를 다시 읽습니다.

        Re-read a record under a row lock held until the caller's transaction
        ends. An identity-mapped copy is overwritten with the locked values,
        so status checks made after the lock see what other transactions
        committed. Backends without row locks (SQLite) ignore FOR UPDATE.

        Returns:
            ModelType | None: 잠긴 레코드 또는 None (Locked record or None)
        """
        result = await db.execute(
            select(self.model)
            .where(self.model.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_paginated(
        self,
        db: AsyncSession,
        query: Select,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[Sequence[ModelType], int]:
        """쿼리 결과를 페이지 단위로 조회합니다.

        Run ``query`` one page at a time.

        Returns:
            tuple[Sequence[ModelType], int]: (현재 페이지, 전체 건수)
                                             (Page of records, total count)
        """
        total: int = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

        offset: int = (max(page, 1) - 1) * per_page
        result = await db.execute(query.offset(offset).limit(per_page))
        return result.scalars().all(), total

    async def create(
        self,
        db: AsyncSession,
        obj_data: dict[str, Any],
    ) -> ModelType:
        """새 레코드를 추가하고 flush 합니다.

        Insert a record and flush so database defaults and keys are loaded.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            obj_data: 컬럼명-값 딕셔너리 (Column values for the new record)

        Returns:
            ModelType: 생성된 레코드 (The created record)
        """
        db_obj: ModelType = self.model(**obj_data)
        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        record_id: UUID,
        update_data: dict[str, Any],
    ) -> ModelType | None:
        """레코드의 컬럼 값을 변경합니다. 모델에 없는 키는 무시합니다.

        Update columns of a record; keys that are not model attributes are
        ignored.

        Returns:
            ModelType | None: 변경된 레코드, 없으면 None (Updated record or None)
        """
        db_obj: ModelType | None = await self.get_by_id(db, record_id)
        if db_obj is None:
            return None

        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def delete(
        self,
        db: AsyncSession,
        record_id: UUID,
    ) -> bool:
        """레코드를 삭제합니다 (Delete a record; False when it does not exist)."""
        db_obj: ModelType | None = await self.get_by_id(db, record_id)
        if db_obj is None:
            return False

        await db.delete(db_obj)
        await db.flush()
        return True

    async def exists(
        self,
        db: AsyncSession,
        filters: dict[str, Any],
    ) -> bool:
        """모든 조건이 일치하는 레코드가 있는지 확인합니다.

        Check whether a record matches every ``column == value`` filter.
        """
        conditions = [getattr(self.model, column) == value for column, value in filters.items()]
        return bool((await db.execute(select(exists().where(*conditions)))).scalar())
