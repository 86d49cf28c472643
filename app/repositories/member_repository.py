"""회원 레포지토리 — 회원 조회 DB 쿼리 담당.

Member Repository — Read-side member queries used by billing.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.member import Member
from app.repositories.base import BaseRepository


class MemberRepository(BaseRepository[Member]):
    """회원 레포지토리.

    Member repository with login-id lookup.

    Extends:
        BaseRepository[Member]
    """

    def __init__(self) -> None:
        super().__init__(Member)

    async def get_by_mid(
        self,
        db: AsyncSession,
        mid: str,
    ) -> Member | None:
        """로그인 아이디로 회원을 조회합니다.

        Retrieve a member by login id.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            mid: 로그인 아이디 (Login id)

        Returns:
            Member | None: 조회된 회원 또는 None (Found member or None)
        """
        result = await db.execute(select(Member).where(Member.mid == mid))
        return result.scalar_one_or_none()


# 싱글턴 인스턴스 — Singleton instance
member_repository: MemberRepository = MemberRepository()
