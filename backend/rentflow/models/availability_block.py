from rentflow.extensions import db
from rentflow.utils.clock import utcnow


class AvailabilityBlock(db.Model):
    """Dates of an item held for a rental (inclusive range)."""

    __tablename__ = "availability_blocks"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
    )
    rental_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rental_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.Index("ix_availability_blocks_item_range", "item_id", "start_date", "end_date"),
    )
