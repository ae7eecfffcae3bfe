from rentflow.extensions import db


class Item(db.Model):
    """The part of a listing the rental lifecycle reads (pricing lives elsewhere)."""

    __tablename__ = "items"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    owner_id = db.Column(db.Integer, nullable=False, index=True)
    title = db.Column(db.String(150), nullable=False)

    daily_rate = db.Column(db.Numeric(10, 2), nullable=False)
    deposit = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # Instant booking skips the owner approval step.
    instant_booking = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Item id={self.id} owner={self.owner_id}>"
