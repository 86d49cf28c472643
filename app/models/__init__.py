"""SQLAlchemy ORM 모델 패키지 — 모든 도메인 모델의 중앙 임포트 지점.

SQLAlchemy ORM models package — Central import point for all domain models.
Importing from this package ensures all models are registered with the
SQLAlchemy metadata, which is required for Alembic migrations and
test schema creation.

Modules:
    member: 회원 (Members)
    plan: 플랜 이름, 플랜, 혜택, 약정, 가격 (Plan names, plans, benefits, terms, prices)
    payment: 결제수단 (Payment methods / billing keys)
    subscription: 구독, 청구서, 결제 시도 (Memberships, invoices, attempts)
    notification: 알림 (Member notifications)
"""

from app.models.member import Member
from app.models.plan import PlanName, Plan, PlanBenefit, PlanTerm, PlanPrice
from app.models.payment import PlanPayment
from app.models.subscription import PlanMember, PlanInvoice, PlanAttempt
from app.models.notification import Notification

__all__ = [
    "Member",
    "PlanName", "Plan", "PlanBenefit", "PlanTerm", "PlanPrice",
    "PlanPayment",
    "PlanMember", "PlanInvoice", "PlanAttempt",
    "Notification",
]
