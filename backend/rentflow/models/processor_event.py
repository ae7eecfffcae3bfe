from rentflow.extensions import db
from rentflow.utils.clock import utcnow


class ProcessorEvent(db.Model):
    """One applied payment-processor callback; the txn id makes replays detectable."""

    __tablename__ = "processor_events"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    processor_txn_id = db.Column(db.String(120), nullable=False, unique=True)

    rental_request_id = db.Column(db.Integer, nullable=True, index=True)
    extension_id = db.Column(db.Integer, nullable=True)
    outcome = db.Column(db.String(20), nullable=False)

    received_at = db.Column(db.DateTime, nullable=False, default=utcnow)
