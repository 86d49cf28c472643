"""도메인 HTTP 예외 모듈.

Domain errors raised by the catalog, payment method, membership and billing
services. Each one is an HTTPException carrying its status code, so admin
routes let them propagate unchanged and the billing orchestrator can catch
them by type.

Usage:
    from app.utils.exceptions import NotFoundError, PriceNotFoundError
    raise NotFoundError("Membership not found")
"""

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """404 — 플랜, 가격, 결제수단, 구독, 청구서를 찾을 수 없음.

    Missing plan, price, payment method, membership or invoice. Billing
    never retries these on its own.
    """

    def __init__(self, detail: str = "Not found") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class DuplicateError(HTTPException):
    """409 — 유일성 제약 위반 (duplicate plan code, duplicate price row...)."""

    def __init__(self, detail: str = "Already exists") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class BadRequestError(HTTPException):
    """400 — 허용되지 않는 상태 전이나 값.

    Business rule violations Pydantic cannot see: illegal membership
    transitions, unknown billing modes or notification types, non-positive
    amounts.
    """

    def __init__(self, detail: str = "Invalid request") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class PriceNotFoundError(NotFoundError):
    """플랜/약정/결제방식 조합에 활성 가격이 없을 때 발생.

    Raised when no active price row matches a (plan, term, billing mode)
    combination. The combination is unavailable; callers must not fall back
    to a default price.
    """

    def __init__(self, detail: str = "Plan/term/mode combination unavailable") -> None:
        super().__init__(detail=detail)


class DuplicateMethodError(DuplicateError):
    """동일 회원/고객아이디 결제수단 중복 등록."""

    def __init__(self, detail: str = "Payment method already registered") -> None:
        super().__init__(detail=detail)


class AlreadySubscribedError(DuplicateError):
    """회원에게 해지되지 않은 구독이 이미 있음 (member already holds a live membership)."""

    def __init__(self, detail: str = "Member already has a live membership") -> None:
        super().__init__(detail=detail)


class PlanInUseError(HTTPException):
    """구독 이력이 있는 플랜 삭제 시도 (409).

    Raised when deleting a plan that memberships (live or cancelled) still reference.
    """

    def __init__(self, detail: str = "Plan is referenced by memberships") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class BadGatewayError(HTTPException):
    """502 — 결제 게이트웨이 호출 실패 (Payment gateway call failed)."""

    def __init__(self, detail: str = "Payment gateway unavailable") -> None:
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)
