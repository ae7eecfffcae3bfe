"""Periodic sweep for rentals whose clocks ran out.

This is the only place the payment grace period is enforced: approved
rentals left unpaid past ``PAYMENT_GRACE_HOURS`` are cancelled, and
completed rentals older than ``ARCHIVE_RETENTION_DAYS`` are archived.
Candidates are read without locking and re-checked under the rental lock,
so a payment landing at the same moment wins or loses cleanly.
"""

import time
from datetime import timedelta

from flask import current_app

from rentflow.events import DomainEvent, publish
from rentflow.extensions.db import db
from rentflow.models.rental_request import RentalRequest
from rentflow.services import lifecycle_service
from rentflow.utils.clock import utcnow
from rentflow.utils.errors import ApiError
from rentflow.utils.locks import rental_transaction

PAYMENT_GRACE_HOURS_DEFAULT = 24
EXPIRED_REASON = "payment window expired"


def _grace_hours() -> int:
    try:
        return max(1, int(current_app.config.get("PAYMENT_GRACE_HOURS", PAYMENT_GRACE_HOURS_DEFAULT)))
    except (TypeError, ValueError):
        return PAYMENT_GRACE_HOURS_DEFAULT


def payment_expired(rental: RentalRequest, now=None) -> bool:
    if rental.status != "approved":
        return False
    now = now or utcnow()
    return rental.last_status_change_at <= now - timedelta(hours=_grace_hours())


def _candidate_ids(status: str, older_than) -> list[int]:
    rows = (
        db.session.query(RentalRequest.id)
        .filter(RentalRequest.status == status, RentalRequest.last_status_change_at <= older_than)
        .order_by(RentalRequest.last_status_change_at.asc())
        .all()
    )
    return [r[0] for r in rows]


def expire_unpaid(rental_id: int, now=None) -> bool:
    """Cancel one approved rental if its payment window has passed."""

    events: list[DomainEvent] = []
    with rental_transaction(rental_id) as rental:
        if not payment_expired(rental, now):
            return False
        events = lifecycle_service.apply_cancel(rental, EXPIRED_REASON, by_user_id=None, now=now)
    publish(events)
    return True


def archive_completed(rental_id: int, now=None) -> bool:
    with rental_transaction(rental_id) as rental:
        if not lifecycle_service.archive_due(rental, now):
            return False
        lifecycle_service.apply_archive(rental, now=now)
    return True


def sweep(now=None) -> dict:
    """One pass over both clocks. Returns the ids acted on."""

    now = now or utcnow()
    result = {"cancelled": [], "archived": [], "errors": []}

    grace_cutoff = now - timedelta(hours=_grace_hours())
    for rental_id in _candidate_ids("approved", grace_cutoff):
        try:
            if expire_unpaid(rental_id, now):
                result["cancelled"].append(rental_id)
        except ApiError as err:
            current_app.logger.warning("[deadlines] rental=%s not cancelled: %s", rental_id, err.message)
            result["errors"].append(rental_id)

    retention_cutoff = now - timedelta(days=lifecycle_service.archive_retention_days())
    for rental_id in _candidate_ids("completed", retention_cutoff):
        try:
            if archive_completed(rental_id, now):
                result["archived"].append(rental_id)
        except ApiError as err:
            current_app.logger.warning("[deadlines] rental=%s not archived: %s", rental_id, err.message)
            result["errors"].append(rental_id)

    if result["cancelled"] or result["archived"]:
        current_app.logger.info(
            "[deadlines] sweep cancelled=%s archived=%s",
            result["cancelled"],
            result["archived"],
        )
    return result


def run_forever(interval_seconds: int | None = None, max_runs: int | None = None) -> None:
    interval = interval_seconds or int(current_app.config.get("DEADLINE_SWEEP_INTERVAL_SECONDS", 60))
    runs = 0
    while max_runs is None or runs < max_runs:
        try:
            sweep()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("[deadlines] sweep failed")
        runs += 1
        if max_runs is None or runs < max_runs:
            time.sleep(interval)
