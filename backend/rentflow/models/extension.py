from rentflow.extensions import db
from rentflow.utils.clock import utcnow

EXTENSION_STATUSES = ("pending", "approved", "declined")


class Extension(db.Model):
    __tablename__ = "rental_extensions"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    rental_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rental_requests.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    requested_by_user_id = db.Column(db.Integer, nullable=False)

    previous_end_date = db.Column(db.Date, nullable=False)
    new_end_date = db.Column(db.Date, nullable=False)
    extra_days = db.Column(db.Integer, nullable=False)
    additional_cost = db.Column(db.Numeric(10, 2), nullable=False)
    message = db.Column(db.String(500), nullable=True)

    status = db.Column(
        db.Enum(*EXTENSION_STATUSES, name="extension_status_enum"),
        nullable=False,
        default="pending",
    )
    payment_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    processor_txn_id = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    responded_at = db.Column(db.DateTime, nullable=True)
    confirmed_at = db.Column(db.DateTime, nullable=True)

    rental = db.relationship("RentalRequest", lazy="joined")
