from datetime import date

from flask import current_app

from rentflow.extensions.db import db
from rentflow.models.availability_block import AvailabilityBlock
from rentflow.utils.errors import DatesUnavailable


def conflicting_block(item_id: int, start: date, end: date, rental_id: int | None = None) -> AvailabilityBlock | None:
    q = AvailabilityBlock.query.filter(
        AvailabilityBlock.item_id == item_id,
        AvailabilityBlock.start_date <= end,
        AvailabilityBlock.end_date >= start,
    )
    if rental_id is not None:
        q = q.filter(AvailabilityBlock.rental_request_id != rental_id)
    return q.with_for_update(read=True).first()


def is_range_free(item_id: int, start: date, end: date, rental_id: int | None = None) -> bool:
    return conflicting_block(item_id, start, end, rental_id=rental_id) is None


def block_dates(item_id: int, start: date, end: date, rental_id: int) -> AvailabilityBlock:
    """
    Hold [start, end] of an item for a rental.

    Runs inside the caller's transaction: the block is committed together
    with the status change that needed it. Re-blocking a range the same
    rental already holds is a no-op.
    """

    if end < start:
        raise DatesUnavailable("Invalid date range.")

    existing = AvailabilityBlock.query.filter_by(
        item_id=item_id,
        rental_request_id=rental_id,
        start_date=start,
        end_date=end,
    ).first()
    if existing is not None:
        return existing

    conflict = conflicting_block(item_id, start, end, rental_id=rental_id)
    if conflict is not None:
        raise DatesUnavailable(
            "The item is already booked for the selected dates.",
            payload={"conflicting_rental_id": conflict.rental_request_id},
        )

    block = AvailabilityBlock(item_id=item_id, rental_request_id=rental_id, start_date=start, end_date=end)
    db.session.add(block)
    db.session.flush()
    current_app.logger.info("[availability] blocked item=%s %s..%s rental=%s", item_id, start, end, rental_id)
    return block


def release_dates(rental_id: int) -> int:
    """Drop every block held by a rental. Idempotent; returns how many rows went away."""

    n = AvailabilityBlock.query.filter_by(rental_request_id=rental_id).delete(synchronize_session="fetch")
    if n:
        current_app.logger.info("[availability] released %s block(s) rental=%s", n, rental_id)
    return int(n or 0)


def release_range(rental_id: int, start: date, end: date) -> int:
    """Drop the block a rental holds on exactly [start, end]."""

    n = AvailabilityBlock.query.filter_by(
        rental_request_id=rental_id,
        start_date=start,
        end_date=end,
    ).delete(synchronize_session="fetch")
    if n:
        current_app.logger.info("[availability] released %s..%s rental=%s", start, end, rental_id)
    return int(n or 0)


def blocks_for_rental(rental_id: int) -> list[dict]:
    rows = (
        AvailabilityBlock.query.filter_by(rental_request_id=rental_id)
        .order_by(AvailabilityBlock.start_date.asc())
        .all()
    )
    return [
        {
            "item_id": b.item_id,
            "start_date": b.start_date.isoformat(),
            "end_date": b.end_date.isoformat(),
        }
        for b in rows
    ]
