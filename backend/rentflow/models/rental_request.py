from rentflow.extensions import db
from rentflow.utils.clock import utcnow

RENTAL_STATUSES = (
    "inquiry",
    "pending",
    "approved",
    "paid",
    "completed",
    "declined",
    "cancelled",
    "archived",
)

# No way out of these.
TERMINAL_STATUSES = ("declined", "cancelled", "archived")

# Checkout intent as seen from the processor callbacks.
PAYMENT_STATES = ("none", "in_flight", "failed", "succeeded")


class RentalRequest(db.Model):
    __tablename__ = "rental_requests"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    renter_id = db.Column(db.Integer, nullable=False, index=True)
    owner_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(
        db.Enum(*RENTAL_STATUSES, name="rental_status_enum"),
        nullable=False,
        default="pending",
        index=True,
    )

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    # Rental price only; fee and deposit are tracked by the escrow account.
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    deposit = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    last_status_change_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    return_confirmed = db.Column(db.Boolean, nullable=False, default=False)

    payment_state = db.Column(
        db.Enum(*PAYMENT_STATES, name="rental_payment_state_enum"),
        nullable=False,
        default="none",
    )
    cancel_reason = db.Column(db.String(300), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, default=utcnow, onupdate=utcnow)

    item = db.relationship("Item", lazy="joined")

    __table_args__ = (
        db.CheckConstraint("start_date <= end_date", name="ck_rental_requests_dates"),
        db.CheckConstraint("renter_id <> owner_id", name="ck_rental_requests_parties"),
    )

    def is_party(self, user_id: int) -> bool:
        return user_id in (self.renter_id, self.owner_id)

    def counterparty_of(self, user_id: int) -> int:
        return self.owner_id if user_id == self.renter_id else self.renter_id

    def __repr__(self) -> str:
        return f"<RentalRequest id={self.id} item={self.item_id} status={self.status}>"
