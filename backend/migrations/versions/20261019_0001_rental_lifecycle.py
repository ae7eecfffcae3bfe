"""rental lifecycle tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

RENTAL_STATUSES = ("inquiry", "pending", "approved", "paid", "completed", "declined", "cancelled", "archived")
PAYMENT_STATES = ("none", "in_flight", "failed", "succeeded")
LEDGER_ENTRY_KINDS = (
    "hold",
    "extension_hold",
    "owner_payout",
    "platform_fee",
    "deposit_return",
    "renter_refund",
    "owner_adjustment",
    "renter_adjustment",
    "platform_adjustment",
)
DISPUTE_REASONS = ("item_damaged", "item_not_returned", "item_not_as_described", "payment_issue", "other")


def upgrade():
    bind = op.get_bind()
    tables = set(inspect(bind).get_table_names())

    if "items" not in tables:
        op.create_table(
            "items",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("owner_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=150), nullable=False),
            sa.Column("daily_rate", sa.Numeric(10, 2), nullable=False),
            sa.Column("deposit", sa.Numeric(10, 2), server_default="0", nullable=False),
            sa.Column("instant_booking", sa.Boolean(), server_default=sa.text("0"), nullable=False),
        )
        op.create_index("ix_items_owner_id", "items", ["owner_id"], unique=False)

    if "rental_requests" not in tables:
        op.create_table(
            "rental_requests",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("renter_id", sa.Integer(), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.Enum(*RENTAL_STATUSES, name="rental_status_enum"), nullable=False),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("deposit", sa.Numeric(10, 2), nullable=False),
            sa.Column("last_status_change_at", sa.DateTime(), nullable=False),
            sa.Column("return_confirmed", sa.Boolean(), server_default=sa.text("0"), nullable=False),
            sa.Column(
                "payment_state",
                sa.Enum(*PAYMENT_STATES, name="rental_payment_state_enum"),
                server_default="none",
                nullable=False,
            ),
            sa.Column("cancel_reason", sa.String(length=300), nullable=True),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="RESTRICT"),
            sa.CheckConstraint("start_date <= end_date", name="ck_rental_requests_dates"),
            sa.CheckConstraint("renter_id <> owner_id", name="ck_rental_requests_parties"),
        )
        op.create_index("ix_rental_requests_item_id", "rental_requests", ["item_id"], unique=False)
        op.create_index("ix_rental_requests_renter_id", "rental_requests", ["renter_id"], unique=False)
        op.create_index("ix_rental_requests_owner_id", "rental_requests", ["owner_id"], unique=False)
        op.create_index("ix_rental_requests_status", "rental_requests", ["status"], unique=False)
        op.create_index(
            "ix_rental_requests_last_status_change_at", "rental_requests", ["last_status_change_at"], unique=False
        )

    if "availability_blocks" not in tables:
        op.create_table(
            "availability_blocks",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("rental_request_id", sa.Integer(), nullable=False),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["rental_request_id"], ["rental_requests.id"], ondelete="CASCADE"),
        )
        op.create_index(
            "ix_availability_blocks_item_range", "availability_blocks", ["item_id", "start_date", "end_date"], unique=False
        )
        op.create_index(
            "ix_availability_blocks_rental_request_id", "availability_blocks", ["rental_request_id"], unique=False
        )

    if "condition_reports" not in tables:
        op.create_table(
            "condition_reports",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("rental_request_id", sa.Integer(), nullable=False),
            sa.Column("report_type", sa.Enum("pickup", "return", name="condition_report_type_enum"), nullable=False),
            sa.Column("reported_by_user_id", sa.Integer(), nullable=False),
            sa.Column("photos", sa.JSON(), nullable=False),
            sa.Column("damages", sa.JSON(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("signature", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.ForeignKeyConstraint(["rental_request_id"], ["rental_requests.id"], ondelete="RESTRICT"),
            sa.UniqueConstraint(
                "rental_request_id", "report_type", "reported_by_user_id", name="uq_condition_reports_one_per_party"
            ),
        )
        op.create_index("ix_condition_reports_rental_request_id", "condition_reports", ["rental_request_id"], unique=False)

    if "rental_extensions" not in tables:
        op.create_table(
            "rental_extensions",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("rental_request_id", sa.Integer(), nullable=False),
            sa.Column("requested_by_user_id", sa.Integer(), nullable=False),
            sa.Column("previous_end_date", sa.Date(), nullable=False),
            sa.Column("new_end_date", sa.Date(), nullable=False),
            sa.Column("extra_days", sa.Integer(), nullable=False),
            sa.Column("additional_cost", sa.Numeric(10, 2), nullable=False),
            sa.Column("message", sa.String(length=500), nullable=True),
            sa.Column(
                "status",
                sa.Enum("pending", "approved", "declined", name="extension_status_enum"),
                server_default="pending",
                nullable=False,
            ),
            sa.Column("payment_confirmed", sa.Boolean(), server_default=sa.text("0"), nullable=False),
            sa.Column("processor_txn_id", sa.String(length=120), nullable=True),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("responded_at", sa.DateTime(), nullable=True),
            sa.Column("confirmed_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["rental_request_id"], ["rental_requests.id"], ondelete="RESTRICT"),
        )
        op.create_index("ix_rental_extensions_rental_request_id", "rental_extensions", ["rental_request_id"], unique=False)

    if "disputes" not in tables:
        op.create_table(
            "disputes",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("rental_request_id", sa.Integer(), nullable=False),
            sa.Column("filed_by_user_id", sa.Integer(), nullable=False),
            sa.Column("against_user_id", sa.Integer(), nullable=False),
            sa.Column("reason", sa.Enum(*DISPUTE_REASONS, name="dispute_reason_enum"), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("evidence_refs", sa.JSON(), nullable=True),
            sa.Column(
                "status",
                sa.Enum("open", "under_review", "resolved", "closed", name="dispute_status_enum"),
                server_default="open",
                nullable=False,
            ),
            sa.Column(
                "decision",
                sa.Enum("favor_renter", "favor_owner", "split", name="dispute_decision_enum"),
                nullable=True,
            ),
            sa.Column("refund_to_renter", sa.Numeric(10, 2), server_default="0", nullable=False),
            sa.Column("charge_to_owner", sa.Numeric(10, 2), server_default="0", nullable=False),
            sa.Column("resolution_message", sa.Text(), nullable=True),
            sa.Column("advisory_suggestion", sa.JSON(), nullable=True),
            sa.Column("resolved_by_user_id", sa.Integer(), nullable=True),
            sa.Column("resolved_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["rental_request_id"], ["rental_requests.id"], ondelete="RESTRICT"),
        )
        op.create_index("ix_disputes_rental_request_id", "disputes", ["rental_request_id"], unique=False)
        op.create_index("ix_disputes_status", "disputes", ["status"], unique=False)

    if "escrow_accounts" not in tables:
        op.create_table(
            "escrow_accounts",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("rental_request_id", sa.Integer(), nullable=False),
            sa.Column("rental_amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("platform_fee", sa.Numeric(10, 2), nullable=False),
            sa.Column("deposit", sa.Numeric(10, 2), nullable=False),
            sa.Column(
                "status",
                sa.Enum("held", "released", "settled", name="escrow_status_enum"),
                server_default="held",
                nullable=False,
            ),
            sa.Column("owner_paid", sa.Numeric(10, 2), server_default="0", nullable=False),
            sa.Column("renter_refunded", sa.Numeric(10, 2), server_default="0", nullable=False),
            sa.Column("platform_retained", sa.Numeric(10, 2), server_default="0", nullable=False),
            sa.Column("deposit_returned", sa.Numeric(10, 2), server_default="0", nullable=False),
            sa.Column("held_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("released_at", sa.DateTime(), nullable=True),
            sa.Column("settled_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["rental_request_id"], ["rental_requests.id"], ondelete="RESTRICT"),
            sa.UniqueConstraint("rental_request_id", name="uq_escrow_accounts_rental_request_id"),
        )

    if "ledger_entries" not in tables:
        op.create_table(
            "ledger_entries",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("escrow_account_id", sa.Integer(), nullable=False),
            sa.Column("kind", sa.Enum(*LEDGER_ENTRY_KINDS, name="ledger_entry_kind_enum"), nullable=False),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("dispute_id", sa.Integer(), nullable=True),
            sa.Column("note", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.ForeignKeyConstraint(["escrow_account_id"], ["escrow_accounts.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["dispute_id"], ["disputes.id"], ondelete="RESTRICT"),
        )
        op.create_index("ix_ledger_entries_escrow_account_id", "ledger_entries", ["escrow_account_id"], unique=False)

    if "processor_events" not in tables:
        op.create_table(
            "processor_events",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("processor_txn_id", sa.String(length=120), nullable=False),
            sa.Column("rental_request_id", sa.Integer(), nullable=True),
            sa.Column("extension_id", sa.Integer(), nullable=True),
            sa.Column("outcome", sa.String(length=20), nullable=False),
            sa.Column("received_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.UniqueConstraint("processor_txn_id", name="uq_processor_events_processor_txn_id"),
        )
        op.create_index("ix_processor_events_rental_request_id", "processor_events", ["rental_request_id"], unique=False)

    if "notifications" not in tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=60), nullable=False),
            sa.Column("title", sa.String(length=120), nullable=False),
            sa.Column("message", sa.String(length=300), nullable=False),
            sa.Column("related_id", sa.Integer(), nullable=True),
            sa.Column("read", sa.Boolean(), server_default=sa.text("0"), nullable=False),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("meta_json", sa.Text(), nullable=True),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
        op.create_index("ix_notifications_read", "notifications", ["read"], unique=False)
        op.create_index("ix_notifications_created_at", "notifications", ["created_at"], unique=False)


def downgrade():
    bind = op.get_bind()
    tables = set(inspect(bind).get_table_names())

    for name in (
        "notifications",
        "processor_events",
        "ledger_entries",
        "escrow_accounts",
        "disputes",
        "rental_extensions",
        "condition_reports",
        "availability_blocks",
        "rental_requests",
        "items",
    ):
        if name in tables:
            op.drop_table(name)
