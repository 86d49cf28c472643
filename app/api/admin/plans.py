"""관리자 플랜 라우터 — 플랜 카탈로그 조회 API.

Admin Plan Router — Read-only views of the plan catalog.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.billing import PlanDetailResponse
from app.services.plan_service import plan_service

router: APIRouter = APIRouter()


@router.get("", response_model=list[PlanDetailResponse])
async def list_active_plans(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[PlanDetailResponse]:
    """판매 중인 플랜 목록을 혜택/가격과 함께 조회합니다.

    List active plans with their benefit and active prices.
    """
    return await plan_service.get_active_plans(db)


@router.get("/{code}", response_model=PlanDetailResponse)
async def get_plan(
    code: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanDetailResponse:
    """플랜 코드로 플랜 상세를 조회합니다 (Plan detail by code)."""
    return await plan_service.get_plan_by_code(db, code)
