from rentflow.extensions import db
from rentflow.utils.clock import utcnow

ESCROW_STATUSES = ("held", "released", "settled")

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


class EscrowAccount(db.Model):
    """Money captured for one rental and how it has been distributed so far."""

    __tablename__ = "escrow_accounts"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    rental_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rental_requests.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    rental_amount = db.Column(db.Numeric(10, 2), nullable=False)
    platform_fee = db.Column(db.Numeric(10, 2), nullable=False)
    deposit = db.Column(db.Numeric(10, 2), nullable=False)

    status = db.Column(
        db.Enum(*ESCROW_STATUSES, name="escrow_status_enum"),
        nullable=False,
        default="held",
    )

    # Distribution of rental_amount + platform_fee + deposit, zero while held.
    owner_paid = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    renter_refunded = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    platform_retained = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    deposit_returned = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    held_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    released_at = db.Column(db.DateTime, nullable=True)
    settled_at = db.Column(db.DateTime, nullable=True)

    entries = db.relationship(
        "LedgerEntry",
        back_populates="account",
        order_by="LedgerEntry.id",
        lazy="selectin",
    )

    @property
    def total_held(self):
        return self.rental_amount + self.platform_fee + self.deposit


class LedgerEntry(db.Model):
    """Append-only journal line. Positive amounts move money to the party."""

    __tablename__ = "ledger_entries"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    escrow_account_id = db.Column(
        db.Integer,
        db.ForeignKey("escrow_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    kind = db.Column(db.Enum(*LEDGER_ENTRY_KINDS, name="ledger_entry_kind_enum"), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    dispute_id = db.Column(db.Integer, db.ForeignKey("disputes.id", ondelete="RESTRICT"), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    account = db.relationship("EscrowAccount", back_populates="entries")
