"""초기 데이터 시드 스크립트 — 플랜 카탈로그 생성.

Seed script — Creates the sample plan catalog.
Run this script once to bootstrap the database with plans, terms and prices.

Usage:
    python -m app.seed

Creates:
    - 2개 플랜: STANDARD("Standard"), PREMIUM("Premium") (2 plans)
    - 4개 약정: 1/3/6/12개월 (4 billing terms)
    - 플랜별 약정 가격: 1개월 MONTHLY, 그 외 PREPAID_TERM (One price per plan/term)
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from app.database import Base, async_session, engine
from app.models import Plan  # noqa: F401 — register all models with metadata
from app.models.plan import BillingMode
from app.services.plan_service import plan_service

# 플랜 정의 — (코드, 이름, 대여 가격 상한, 월 요금)
# Plan definitions — (code, name, rental price cap, monthly amount)
PLANS: list[tuple[str, str, Decimal, Decimal]] = [
    ("STANDARD", "Standard", Decimal("300000"), Decimal("9900")),
    ("PREMIUM", "Premium", Decimal("1000000"), Decimal("19900")),
]

# 약정별 할인율 — Discount per term length (months -> multiplier)
TERM_DISCOUNTS: dict[int, Decimal] = {
    1: Decimal("1.00"),
    3: Decimal("0.95"),
    6: Decimal("0.90"),
    12: Decimal("0.85"),
}


async def seed() -> None:
    """데이터베이스를 초기 데이터로 시드합니다.

    Seed the database with the sample plan catalog.
    Creates tables if they don't exist, then inserts plans, benefits and
    one price per plan/term.

    Idempotent: 이미 시드된 경우 건너뜁니다 (Skips if already seeded).
    """
    # 테이블 생성 — DDL 실행 (Create all tables from ORM metadata)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as db:
        # 이미 시드되었는지 확인 — 플랜이 하나라도 있으면 건너뜀
        # (Check if already seeded by looking for any existing plan)
        result = await db.execute(select(Plan).limit(1))
        if result.scalar_one_or_none():
            print("Already seeded. Skipping.")
            return

        for code, name, price_cap, monthly in PLANS:
            plan = await plan_service.create_plan(db, code=code, name=name)
            await plan_service.add_benefit(
                db, plan.id, price_cap=price_cap, note=f"{name} 플랜 대여 혜택"
            )
            for months, discount in TERM_DISCOUNTS.items():
                await plan_service.create_price(
                    db,
                    plan.id,
                    term_months=months,
                    billing_mode=BillingMode.default_for(months),
                    amount=(monthly * months * discount).quantize(Decimal("1")),
                )

        await db.commit()
        print(f"Seeded: plans={', '.join(code for code, *_ in PLANS)}, terms={sorted(TERM_DISCOUNTS)}")


if __name__ == "__main__":
    asyncio.run(seed())
