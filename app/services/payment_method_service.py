"""결제수단 서비스 — 빌링키 등록/조회 비즈니스 로직.

Payment Method Service — Registry of members' tokenized payment instruments.
A (member, customer reference) pair identifies one method; card numbers are
never seen, only the gateway billing key and display metadata.
"""

import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.gateway.base import CardMeta
from app.models.payment import PlanPayment
from app.repositories.member_repository import member_repository
from app.repositories.payment_method_repository import payment_method_repository
from app.utils.exceptions import BadRequestError, DuplicateMethodError, NotFoundError

logger = logging.getLogger(__name__)


class PaymentMethodService:
    """결제수단 서비스.

    Payment method registry service.
    """

    async def register_method(
        self,
        db: AsyncSession,
        member_id: UUID,
        customer_ref: str,
        gateway_token: str,
        card_meta: CardMeta | None = None,
        raw_issue_response: str | None = None,
    ) -> PlanPayment:
        """결제수단(빌링키)을 등록합니다.

        Register a payment method. Duplicates are rejected by an existence
        check before anything is written; the unique constraint on
        (member_id, customer_ref) backs it up.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            member_id: 회원 UUID (Member UUID)
            customer_ref: 게이트웨이 고객 아이디 (Gateway customer reference)
            gateway_token: 빌링키 (Gateway billing key)
            card_meta: 카드 표시 정보, 선택 (Card display metadata, optional)
            raw_issue_response: 발급 응답 원문, 선택 (Raw issuance payload, optional)

        Returns:
            PlanPayment: 등록된 결제수단 (Registered payment method)

        Raises:
            NotFoundError: 회원을 찾을 수 없을 때 (Member not found)
            BadRequestError: 고객아이디 또는 빌링키가 비어 있을 때
                             (Blank customer reference or token)
            DuplicateMethodError: 같은 회원/고객아이디가 이미 등록되었을 때
                                  (Pair already registered)
        """
        if not customer_ref or not gateway_token:
            raise BadRequestError("Customer reference and gateway token are required")
        if await member_repository.get_by_id(db, member_id) is None:
            raise NotFoundError("Member not found")

        # 중복 사전 확인 — Pre-check before insert
        if await payment_method_repository.exists_for_customer(db, member_id, customer_ref):
            raise DuplicateMethodError()

        meta: CardMeta = card_meta or CardMeta()
        method: PlanPayment = await payment_method_repository.create(
            db,
            {
                "member_id": member_id,
                "customer_ref": customer_ref,
                "gateway_token": gateway_token,
                "pg_provider": meta.pg_provider,
                "card_brand": meta.brand,
                "card_bin": meta.bin,
                "card_last4": meta.last4,
                "raw_issue_response": raw_issue_response,
            },
        )
        logger.info(
            "Payment method registered",
            extra={"member_id": str(member_id), "payment_method_id": str(method.id)},
        )
        return method

    async def find_method(
        self,
        db: AsyncSession,
        member_id: UUID,
        customer_ref: str,
    ) -> PlanPayment:
        """회원/고객아이디 조합의 가장 최근 결제수단을 조회합니다.

        Retrieve the most recently registered method for a member/customer pair.

        Raises:
            NotFoundError: 결제수단이 없을 때 (No such method)
        """
        method: PlanPayment | None = await payment_method_repository.find_latest_for_customer(
            db, member_id, customer_ref
        )
        if method is None:
            raise NotFoundError("Payment method not found")
        return method

    async def list_methods(self, db: AsyncSession, member_id: UUID) -> Sequence[PlanPayment]:
        """회원의 결제수단 목록을 최신순으로 조회합니다 (Newest first)."""
        return await payment_method_repository.list_by_member(db, member_id)

    async def get_billable_method(
        self,
        db: AsyncSession,
        member_id: UUID,
        preferred_id: UUID | None = None,
    ) -> PlanPayment | None:
        """청구에 사용할 결제수단을 선택합니다.

        Pick the method a cycle is charged with: the preferred method when it
        belongs to the member and is active, otherwise the member's newest
        active method.

        Returns:
            PlanPayment | None: 결제수단 또는 None (Method, or None when none is usable)
        """
        if preferred_id is not None:
            preferred: PlanPayment | None = await payment_method_repository.get_by_id(db, preferred_id)
            if preferred is not None and preferred.member_id == member_id and preferred.is_active:
                return preferred
        return await payment_method_repository.get_latest_active(db, member_id)

    async def deactivate_method(self, db: AsyncSession, method_id: UUID) -> PlanPayment:
        """결제수단을 비활성화합니다. 이후 청구에 사용되지 않습니다.

        Deactivate a payment method so billing no longer charges it.
        """
        method: PlanPayment | None = await payment_method_repository.update(
            db, method_id, {"is_active": False}
        )
        if method is None:
            raise NotFoundError("Payment method not found")
        return method

    async def update_card_meta(self, db: AsyncSession, method: PlanPayment, meta: CardMeta) -> None:
        """게이트웨이가 돌려준 카드 정보로 표시 정보를 갱신합니다.

        Refresh display metadata from card info parsed by the gateway. Only
        fields the gateway reported are overwritten; the issuance payload is
        left untouched.
        """
        if meta.pg_provider:
            method.pg_provider = meta.pg_provider
        if meta.brand:
            method.card_brand = meta.brand
        if meta.bin:
            method.card_bin = meta.bin
        if meta.last4:
            method.card_last4 = meta.last4
        await db.flush()


# 싱글턴 인스턴스 — Singleton instance
payment_method_service: PaymentMethodService = PaymentMethodService()
