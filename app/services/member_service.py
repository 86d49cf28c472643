"""회원 조회 서비스 — 청구/영수증 표시용 읽기 전용 회원 디렉터리.

Member Directory Service — Read-only member lookup used to render invoices,
receipts and payment notifications.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.member import Member
from app.repositories.member_repository import member_repository
from app.utils.exceptions import NotFoundError


class MemberService:
    """회원 디렉터리 서비스 (Read-only member directory)."""

    async def get_member(self, db: AsyncSession, member_id: UUID) -> Member:
        """회원을 조회합니다.

        Retrieve a member by id.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            member_id: 회원 UUID (Member UUID)

        Returns:
            Member: 회원 (Member with id, display name and email)

        Raises:
            NotFoundError: 회원을 찾을 수 없을 때 (Member not found)
        """
        member: Member | None = await member_repository.get_by_id(db, member_id)
        if member is None:
            raise NotFoundError("Member not found")
        return member

    async def get_member_by_mid(self, db: AsyncSession, mid: str) -> Member:
        """회원 아이디로 회원을 조회합니다 (Retrieve a member by login id)."""
        member: Member | None = await member_repository.get_by_mid(db, mid)
        if member is None:
            raise NotFoundError("Member not found")
        return member


# 싱글턴 인스턴스 — Singleton instance
member_service: MemberService = MemberService()
