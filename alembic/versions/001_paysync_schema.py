"""paysync schema

Revision ID: 001_paysync
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "001_paysync"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Accounts
    op.create_table(
        "accounts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=True),
        sa.Column("provider_customer_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sa.UniqueConstraint(
            "provider_customer_id", name="uq_accounts_provider_customer_id"
        ),
    )

    # Payment records
    op.create_table(
        "payment_records",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("provider_customer_id", sa.String(length=255), nullable=False),
        sa.Column("provider_payment_id", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "provider_payment_id", name="uq_payment_records_provider_payment_id"
        ),
    )
    op.create_index(
        "ix_payment_records_account_id", "payment_records", ["account_id"]
    )
    op.create_index(
        "ix_payment_records_provider_customer_id",
        "payment_records",
        ["provider_customer_id"],
    )

    # Subscription records
    op.create_table(
        "subscription_records",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("provider_customer_id", sa.String(length=255), nullable=False),
        sa.Column("provider_subscription_id", sa.String(length=255), nullable=False),
        sa.Column("price_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "provider_subscription_id",
            name="uq_subscription_records_provider_subscription_id",
        ),
    )
    op.create_index(
        "ix_subscription_records_account_id", "subscription_records", ["account_id"]
    )
    op.create_index(
        "ix_subscription_records_provider_customer_id",
        "subscription_records",
        ["provider_customer_id"],
    )

    # Webhook event log
    op.create_table(
        "webhook_event_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("provider", sa.String(length=80), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=True),
        sa.Column("event_type", sa.String(length=120), nullable=True),
        sa.Column("customer_id", sa.String(length=255), nullable=True),
        sa.Column(
            "outcome",
            sa.Enum("accepted", "rejected", "failed", name="webhookeventoutcome"),
            nullable=False,
        ),
        sa.Column("reason", sa.String(length=80), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_webhook_event_logs_event_id", "webhook_event_logs", ["event_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_webhook_event_logs_event_id", table_name="webhook_event_logs")
    op.drop_table("webhook_event_logs")

    op.drop_index(
        "ix_subscription_records_provider_customer_id",
        table_name="subscription_records",
    )
    op.drop_index(
        "ix_subscription_records_account_id", table_name="subscription_records"
    )
    op.drop_table("subscription_records")

    op.drop_index(
        "ix_payment_records_provider_customer_id", table_name="payment_records"
    )
    op.drop_index("ix_payment_records_account_id", table_name="payment_records")
    op.drop_table("payment_records")

    op.drop_table("accounts")

    sa.Enum(name="webhookeventoutcome").drop(op.get_bind(), checkfirst=True)
