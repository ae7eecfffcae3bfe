from rentflow.extensions import db
from rentflow.utils.clock import utcnow

DISPUTE_REASONS = (
    "item_damaged",
    "item_not_returned",
    "item_not_as_described",
    "payment_issue",
    "other",
)
DISPUTE_STATUSES = ("open", "under_review", "resolved", "closed")
DISPUTE_DECISIONS = ("favor_renter", "favor_owner", "split")

# A dispute in one of these states blocks the escrow release.
ACTIVE_DISPUTE_STATUSES = ("open", "under_review")


class Dispute(db.Model):
    __tablename__ = "disputes"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    rental_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rental_requests.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    filed_by_user_id = db.Column(db.Integer, nullable=False)
    against_user_id = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.Enum(*DISPUTE_REASONS, name="dispute_reason_enum"), nullable=False)
    description = db.Column(db.Text, nullable=False)
    evidence_refs = db.Column(db.JSON, nullable=True)

    status = db.Column(
        db.Enum(*DISPUTE_STATUSES, name="dispute_status_enum"),
        nullable=False,
        default="open",
        index=True,
    )

    decision = db.Column(db.Enum(*DISPUTE_DECISIONS, name="dispute_decision_enum"), nullable=True)
    refund_to_renter = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    charge_to_owner = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    resolution_message = db.Column(db.Text, nullable=True)

    # Automated recommendation as submitted; informational only.
    advisory_suggestion = db.Column(db.JSON, nullable=True)

    resolved_by_user_id = db.Column(db.Integer, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, default=utcnow, onupdate=utcnow)

    rental = db.relationship("RentalRequest", lazy="joined")

    @classmethod
    def active_for_rental(cls, rental_id: int):
        return cls.query.filter(
            cls.rental_request_id == rental_id,
            cls.status.in_(ACTIVE_DISPUTE_STATUSES),
        )

    def __repr__(self) -> str:
        return f"<Dispute id={self.id} rental={self.rental_request_id} status={self.status}>"
