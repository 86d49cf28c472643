"""create subscription billing tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-03-02 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1) 회원 / 알림
    op.create_table(
        "members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("mid", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("mid", name="uq_members_mid"),
    )
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("related_url", sa.String(500), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_member_id", "notifications", ["member_id"])

    # 2) 플랜 카탈로그
    op.create_table(
        "plan_names",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.UniqueConstraint("name", name="uq_plan_names_name"),
    )
    op.create_table(
        "plans",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("plan_name_id", sa.Uuid(), sa.ForeignKey("plan_names.id"), nullable=False),
        sa.Column("code", sa.String(30), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("code", name="uq_plans_code"),
    )
    op.create_table(
        "plan_benefits",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("price_cap", sa.Numeric(12, 2), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
    )
    op.create_index("ix_plan_benefits_plan_id", "plan_benefits", ["plan_id"])
    op.create_table(
        "plan_terms",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("months", sa.Integer(), nullable=False),
        sa.UniqueConstraint("months", name="uq_plan_terms_months"),
    )
    op.create_table(
        "plan_prices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column("term_id", sa.Uuid(), sa.ForeignKey("plan_terms.id"), nullable=False),
        sa.Column("billing_mode", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="KRW"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("plan_id", "term_id", "billing_mode", name="uq_plan_price_plan_term_mode"),
    )

    # 3) 결제수단
    op.create_table(
        "plan_payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_ref", sa.String(100), nullable=False),
        sa.Column("gateway_token", sa.String(200), nullable=False),
        sa.Column("pg_provider", sa.String(30), nullable=True),
        sa.Column("card_brand", sa.String(40), nullable=True),
        sa.Column("card_bin", sa.String(12), nullable=True),
        sa.Column("card_last4", sa.String(8), nullable=True),
        sa.Column("raw_issue_response", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("member_id", "customer_ref", name="uq_plan_payment_member_customer"),
    )
    op.create_index("ix_plan_payments_member_id", "plan_payments", ["member_id"])

    # 4) 구독 / 청구서 / 결제 시도
    op.create_table(
        "plan_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("billing_mode", sa.String(20), nullable=False),
        sa.Column(
            "payment_method_id",
            sa.Uuid(),
            sa.ForeignKey("plan_payments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("next_billing_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_plan_members_status_next_billing", "plan_members", ["status", "next_billing_at"])
    # 회원당 해지되지 않은 구독 하나 — partial unique index
    op.create_index(
        "uq_plan_members_one_live",
        "plan_members",
        ["member_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )

    op.create_table(
        "plan_invoices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("uid", sa.String(64), nullable=False),
        sa.Column("membership_id", sa.Uuid(), sa.ForeignKey("plan_members.id"), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("uid", name="uq_plan_invoices_uid"),
        sa.UniqueConstraint("membership_id", "period_start", name="uq_plan_invoice_membership_period"),
    )
    op.create_index("ix_plan_invoices_membership_id", "plan_invoices", ["membership_id"])

    op.create_table(
        "plan_attempts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("plan_invoices.id"), nullable=False),
        sa.Column("attempt_no", sa.Integer(), nullable=False),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("result", sa.String(20), nullable=False),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        sa.Column("external_attempt_id", sa.String(200), nullable=True),
        sa.Column("receipt_url", sa.String(500), nullable=True),
        sa.Column("raw_response", sa.Text(), nullable=True),
        sa.UniqueConstraint("invoice_id", "attempt_no", name="uq_plan_attempt_invoice_no"),
    )
    op.create_index("ix_plan_attempts_invoice_id", "plan_attempts", ["invoice_id"])


def downgrade() -> None:
    op.drop_index("ix_plan_attempts_invoice_id", table_name="plan_attempts")
    op.drop_table("plan_attempts")
    op.drop_index("ix_plan_invoices_membership_id", table_name="plan_invoices")
    op.drop_table("plan_invoices")
    op.drop_index("uq_plan_members_one_live", table_name="plan_members")
    op.drop_index("ix_plan_members_status_next_billing", table_name="plan_members")
    op.drop_table("plan_members")
    op.drop_index("ix_plan_payments_member_id", table_name="plan_payments")
    op.drop_table("plan_payments")
    op.drop_table("plan_prices")
    op.drop_table("plan_terms")
    op.drop_index("ix_plan_benefits_plan_id", table_name="plan_benefits")
    op.drop_table("plan_benefits")
    op.drop_table("plans")
    op.drop_table("plan_names")
    op.drop_index("ix_notifications_member_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("members")
