"""Rental lifecycle controller.

The only writer of ``RentalRequest.status``. Every mutation goes through
:func:`rentflow.utils.locks.rental_transaction`; domain events are collected
inside the block and published once it has committed.
"""

from datetime import date, timedelta

from flask import current_app
from sqlalchemy import or_

from rentflow.events import DomainEvent, publish
from rentflow.extensions.db import db
from rentflow.models.item import Item
from rentflow.models.rental_request import RENTAL_STATUSES, TERMINAL_STATUSES, RentalRequest
from rentflow.services import availability_service, escrow_service, extension_service
from rentflow.utils.clock import utcnow
from rentflow.utils.errors import ApiError, DatesUnavailable, InvalidTransition, NotFound
from rentflow.utils.locks import rental_transaction
from rentflow.utils.money import ZERO, fee_on, to_money
from rentflow.utils.responses import page_payload, parse_pagination

# Every status and the statuses it may move to. Anything else is rejected.
TRANSITIONS = {
    "inquiry": ("pending",),
    "pending": ("approved", "declined", "cancelled"),
    "approved": ("paid", "cancelled"),
    "paid": ("completed",),
    "completed": ("archived",),
    **{status: () for status in TERMINAL_STATUSES},
}

ARCHIVE_RETENTION_DAYS_DEFAULT = 30


def archive_retention_days() -> int:
    try:
        return max(0, int(current_app.config.get("ARCHIVE_RETENTION_DAYS", ARCHIVE_RETENTION_DAYS_DEFAULT)))
    except (TypeError, ValueError):
        return ARCHIVE_RETENTION_DAYS_DEFAULT


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, ())


def _ensure_transition(rental: RentalRequest, target: str) -> None:
    if not can_transition(rental.status, target):
        raise InvalidTransition(
            f"Cannot move a {rental.status} rental to {target}.",
            payload={"status": rental.status, "target": target},
        )


def _move(rental: RentalRequest, target: str, now=None) -> str:
    _ensure_transition(rental, target)
    previous = rental.status
    rental.status = target
    rental.last_status_change_at = now or utcnow()
    current_app.logger.info("[lifecycle] rental=%s %s -> %s", rental.id, previous, target)
    return previous


def _require_owner(rental: RentalRequest, user_id: int, action: str) -> None:
    if user_id != rental.owner_id:
        raise InvalidTransition(f"Only the owner can {action} this rental.", status_code=403)


def _require_renter(rental: RentalRequest, user_id: int, action: str) -> None:
    if user_id != rental.renter_id:
        raise InvalidTransition(f"Only the renter can {action} this rental.", status_code=403)


def _require_party(rental: RentalRequest, user_id: int, action: str) -> None:
    if not rental.is_party(user_id):
        raise InvalidTransition(f"Only the renter or the owner can {action} this rental.", status_code=403)


def _status_event(rental: RentalRequest, type_: str, recipients: list, title: str, message: str, **meta) -> DomainEvent:
    meta.setdefault("status", rental.status)
    return DomainEvent(
        type=type_,
        rental_id=rental.id,
        recipients=recipients,
        title=title,
        message=message,
        meta=meta,
        discriminator=rental.status,
    )


def _load_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFound("Item not found.")
    return item


def _validate_dates(start: date, end: date) -> None:
    if start is None or end is None:
        raise ApiError("start_date and end_date are required.", 400)
    if end < start:
        raise ApiError("end_date must be on or after start_date.", 400)
    if start < utcnow().date():
        raise ApiError("start_date cannot be in the past.", 400)


def _positive_amount(total_amount):
    try:
        amount = to_money(total_amount)
    except ValueError:
        raise ApiError("total_amount must be a number.", 400)
    if amount <= ZERO:
        raise ApiError("total_amount must be greater than zero.", 400)
    return amount


def open_inquiry(item_id: int, renter_id: int, start_date: date, end_date: date, message: str | None = None) -> RentalRequest:
    """A conversation about an item before any price is agreed."""

    item = _load_item(item_id)
    if item.owner_id == renter_id:
        raise InvalidTransition("You cannot rent your own item.", status_code=403)
    _validate_dates(start_date, end_date)

    rental = RentalRequest(
        item_id=item.id,
        renter_id=renter_id,
        owner_id=item.owner_id,
        status="inquiry",
        start_date=start_date,
        end_date=end_date,
        total_amount=ZERO,
        deposit=to_money(item.deposit),
        last_status_change_at=utcnow(),
    )
    db.session.add(rental)
    db.session.commit()
    current_app.logger.info("[lifecycle] rental=%s inquiry opened item=%s renter=%s", rental.id, item.id, renter_id)

    publish([
        _status_event(
            rental,
            "inquiry_opened",
            [rental.owner_id],
            "New inquiry",
            (message or "").strip()[:300] or f"Someone is interested in {item.title}.",
        )
    ])
    return rental


def submit_request(rental_id: int, renter_id: int, total_amount, start_date: date | None = None, end_date: date | None = None) -> RentalRequest:
    """Turn an inquiry into a priced request the owner can answer."""

    amount = _positive_amount(total_amount)
    events: list[DomainEvent] = []
    with rental_transaction(rental_id) as rental:
        _require_renter(rental, renter_id, "submit")
        _ensure_transition(rental, "pending")

        if start_date is not None or end_date is not None:
            new_start = start_date or rental.start_date
            new_end = end_date or rental.end_date
            _validate_dates(new_start, new_end)
            rental.start_date, rental.end_date = new_start, new_end

        rental.total_amount = amount
        _move(rental, "pending")
        events.append(
            _status_event(
                rental,
                "request_submitted",
                [rental.owner_id],
                "New rental request",
                f"A renter requested your item from {rental.start_date} to {rental.end_date}.",
            )
        )
    publish(events)
    return rental


def create_request(item_id: int, renter_id: int, start_date: date, end_date: date, total_amount) -> RentalRequest:
    """
    Create a priced rental request.

    Instant-booking items skip the owner's answer: the dates are blocked and
    the payment window opens right away. If the dates were taken in the
    meantime the request stays pending for the owner.
    """

    item = _load_item(item_id)
    if item.owner_id == renter_id:
        raise InvalidTransition("You cannot rent your own item.", status_code=403)
    _validate_dates(start_date, end_date)
    amount = _positive_amount(total_amount)

    if not availability_service.is_range_free(item.id, start_date, end_date):
        db.session.rollback()
        raise DatesUnavailable("The item is already booked for the selected dates.")

    rental = RentalRequest(
        item_id=item.id,
        renter_id=renter_id,
        owner_id=item.owner_id,
        status="pending",
        start_date=start_date,
        end_date=end_date,
        total_amount=amount,
        deposit=to_money(item.deposit),
        last_status_change_at=utcnow(),
    )
    db.session.add(rental)
    db.session.commit()
    current_app.logger.info("[lifecycle] rental=%s requested item=%s renter=%s", rental.id, item.id, renter_id)

    if item.instant_booking:
        try:
            return _approve(rental.id, instant=True)
        except DatesUnavailable:
            # Taken between the check above and the block; the owner decides.
            current_app.logger.warning("[lifecycle] rental=%s instant booking fell back to pending", rental.id)
            rental = db.session.get(RentalRequest, rental.id)

    publish([
        _status_event(
            rental,
            "request_submitted",
            [rental.owner_id],
            "New rental request",
            f"A renter requested {item.title} from {start_date} to {end_date}.",
        )
    ])
    return rental


def _approve(rental_id: int, owner_id: int | None = None, instant: bool = False) -> RentalRequest:
    events: list[DomainEvent] = []
    with rental_transaction(rental_id) as rental:
        if not instant:
            _require_owner(rental, owner_id, "approve")
        _ensure_transition(rental, "approved")

        # Dates first: a conflict aborts the whole transition.
        availability_service.block_dates(rental.item_id, rental.start_date, rental.end_date, rental.id)
        _move(rental, "approved")

        events.append(
            _status_event(
                rental,
                "request_approved",
                [rental.renter_id] if not instant else [rental.renter_id, rental.owner_id],
                "Request approved",
                "The request was approved. Complete the payment to keep the dates.",
                instant=instant,
            )
        )
    publish(events)
    return rental


def approve(rental_id: int, owner_id: int) -> RentalRequest:
    return _approve(rental_id, owner_id=owner_id)


def decline(rental_id: int, owner_id: int, reason: str | None = None) -> RentalRequest:
    events: list[DomainEvent] = []
    with rental_transaction(rental_id) as rental:
        _require_owner(rental, owner_id, "decline")
        _move(rental, "declined")
        availability_service.release_dates(rental.id)
        rental.cancel_reason = (reason or "").strip()[:300] or None

        events.append(
            _status_event(
                rental,
                "request_declined",
                [rental.renter_id],
                "Request declined",
                "The owner declined your rental request.",
            )
        )
    publish(events)
    return rental


def apply_cancel(rental: RentalRequest, reason: str | None, by_user_id: int | None = None, now=None) -> list[DomainEvent]:
    """Cancel a rental the caller already holds the transaction for."""

    _move(rental, "cancelled", now=now)
    availability_service.release_dates(rental.id)
    if rental.payment_state == "in_flight":
        rental.payment_state = "failed"
    rental.cancel_reason = (reason or "").strip()[:300] or None

    if by_user_id is None:
        recipients = [rental.renter_id, rental.owner_id]
        message = "The payment window expired and the reservation was cancelled."
    else:
        recipients = [rental.counterparty_of(by_user_id)]
        message = "The other party cancelled the rental."

    return [
        _status_event(
            rental,
            "rental_cancelled",
            recipients,
            "Rental cancelled",
            message,
            reason=rental.cancel_reason,
            by_user_id=by_user_id,
        )
    ]


def cancel(rental_id: int, user_id: int, reason: str | None = None) -> RentalRequest:
    with rental_transaction(rental_id) as rental:
        _require_party(rental, user_id, "cancel")
        events = apply_cancel(rental, reason, by_user_id=user_id)
    publish(events)
    return rental


def begin_checkout(rental_id: int, renter_id: int) -> dict:
    """Open a payment intent; the processor reports back through the callback."""

    with rental_transaction(rental_id) as rental:
        _require_renter(rental, renter_id, "pay for")
        if rental.status != "approved":
            raise InvalidTransition(f"Only approved rentals can be paid (current: {rental.status}).")
        if rental.payment_state != "in_flight":
            rental.payment_state = "in_flight"
            current_app.logger.info("[lifecycle] rental=%s checkout started", rental.id)

        amount = to_money(rental.total_amount)
        fee = fee_on(amount)
        deposit = to_money(rental.deposit)
        checkout = {
            "rental_id": rental.id,
            "rental_amount": str(amount),
            "platform_fee": str(fee),
            "deposit": str(deposit),
            "amount_due": str(amount + fee + deposit),
            "payment_state": rental.payment_state,
        }
    return checkout


def confirm_payment(rental: RentalRequest, processor_txn_id: str) -> list[DomainEvent]:
    """Processor success for a rental the caller holds the transaction for."""

    if rental.status == "paid":
        current_app.logger.info("[lifecycle] rental=%s duplicate payment success txn=%s ignored", rental.id, processor_txn_id)
        return []
    if rental.status != "approved":
        raise InvalidTransition(
            f"Payment arrived for a {rental.status} rental.",
            payload={"stale": True, "status": rental.status},
        )

    escrow_service.hold(rental.id, rental.total_amount, rental.deposit)
    # Already blocked on approval; re-blocking the same range is a no-op.
    availability_service.block_dates(rental.item_id, rental.start_date, rental.end_date, rental.id)
    rental.payment_state = "succeeded"
    _move(rental, "paid")

    return [
        _status_event(
            rental,
            "payment_confirmed",
            [rental.renter_id, rental.owner_id],
            "Payment confirmed",
            "The payment is held in escrow. File the pickup condition report at handover.",
            processor_txn_id=processor_txn_id,
        )
    ]


def record_payment_failure(rental: RentalRequest, processor_txn_id: str) -> list[DomainEvent]:
    if rental.status != "approved":
        current_app.logger.info(
            "[lifecycle] rental=%s payment failure txn=%s ignored (status %s)",
            rental.id,
            processor_txn_id,
            rental.status,
        )
        return []

    rental.payment_state = "failed"
    current_app.logger.info("[lifecycle] rental=%s payment failed txn=%s", rental.id, processor_txn_id)
    return [
        DomainEvent(
            type="payment_failed",
            rental_id=rental.id,
            recipients=[rental.renter_id],
            title="Payment failed",
            message="The payment did not go through. You can retry while the reservation is still open.",
            meta={"processor_txn_id": processor_txn_id},
            discriminator=processor_txn_id,
        )
    ]


def complete(rental_id: int, owner_id: int) -> RentalRequest:
    """Close a returned rental and pay the owner out of escrow."""

    events: list[DomainEvent] = []
    with rental_transaction(rental_id) as rental:
        _require_owner(rental, owner_id, "complete")
        _ensure_transition(rental, "completed")

        account = escrow_service.release(rental.id)
        _move(rental, "completed")
        extension_service.release_unpaid_holds(rental)

        events.append(
            _status_event(
                rental,
                "rental_completed",
                [rental.renter_id, rental.owner_id],
                "Rental completed",
                "The rental is complete. Thanks for renting!",
            )
        )
        if account.status == "released":
            events.append(
                DomainEvent(
                    type="payment_released",
                    rental_id=rental.id,
                    recipients=[rental.owner_id],
                    title="Payment released",
                    message=f"{account.owner_paid} has been released to you.",
                    meta={"owner_paid": str(account.owner_paid)},
                )
            )
    publish(events)
    return rental


def archive_due(rental: RentalRequest, now=None) -> bool:
    """Whether a completed rental has been closed long enough to archive."""

    if rental.status != "completed":
        return False
    now = now or utcnow()
    return rental.last_status_change_at <= now - timedelta(days=archive_retention_days())


def apply_archive(rental: RentalRequest, now=None) -> list[DomainEvent]:
    _move(rental, "archived", now=now)
    return []


def archive(rental_id: int, user_id: int) -> RentalRequest:
    with rental_transaction(rental_id) as rental:
        _require_party(rental, user_id, "archive")
        if rental.status == "archived":
            return rental
        _ensure_transition(rental, "archived")
        if not archive_due(rental):
            raise InvalidTransition(
                f"Completed rentals can be archived {archive_retention_days()} days after completion."
            )
        apply_archive(rental)
    return rental


def rental_to_dict(rental: RentalRequest, viewer_id: int | None = None) -> dict:
    item = rental.item
    role = None
    if viewer_id is not None:
        role = "renter" if viewer_id == rental.renter_id else "owner" if viewer_id == rental.owner_id else None

    return {
        "id": rental.id,
        "item_id": rental.item_id,
        "item_title": item.title if item else None,
        "renter_id": rental.renter_id,
        "owner_id": rental.owner_id,
        "status": rental.status,
        "start_date": rental.start_date.isoformat() if rental.start_date else None,
        "end_date": rental.end_date.isoformat() if rental.end_date else None,
        "total_amount": str(to_money(rental.total_amount)),
        "deposit": str(to_money(rental.deposit)),
        "payment_state": rental.payment_state,
        "return_confirmed": bool(rental.return_confirmed),
        "cancel_reason": rental.cancel_reason,
        "last_status_change_at": rental.last_status_change_at.isoformat() if rental.last_status_change_at else None,
        "created_at": rental.created_at.isoformat() if rental.created_at else None,
        "allowed_transitions": list(TRANSITIONS.get(rental.status, ())),
        "viewer_role": role,
    }


def get_rental(rental_id: int, user_id: int, admin: bool = False) -> RentalRequest:
    rental = db.session.get(RentalRequest, rental_id)
    if rental is None:
        raise NotFound("Rental not found.")
    if not admin and not rental.is_party(user_id):
        # Don't reveal other people's rentals.
        raise NotFound("Rental not found.")
    return rental


def list_rentals(user_id: int, role: str | None = None, status: str | None = None, page=1, per_page=10) -> dict:
    page, per_page = parse_pagination(page, per_page)

    q = RentalRequest.query
    if role == "renter":
        q = q.filter(RentalRequest.renter_id == user_id)
    elif role == "owner":
        q = q.filter(RentalRequest.owner_id == user_id)
    else:
        q = q.filter(or_(RentalRequest.renter_id == user_id, RentalRequest.owner_id == user_id))

    if status:
        if status not in RENTAL_STATUSES:
            raise ApiError("Unknown status filter.", 400, errors={"status": [f"must be one of {', '.join(RENTAL_STATUSES)}"]})
        q = q.filter(RentalRequest.status == status)

    total = q.count()
    rows = (
        q.order_by(RentalRequest.created_at.desc(), RentalRequest.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return page_payload([rental_to_dict(r, viewer_id=user_id) for r in rows], total, page, per_page)
