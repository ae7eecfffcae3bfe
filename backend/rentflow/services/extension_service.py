from datetime import date, timedelta

from flask import current_app

from rentflow.events import DomainEvent, publish
from rentflow.extensions.db import db
from rentflow.models.extension import Extension
from rentflow.models.rental_request import RentalRequest
from rentflow.services import availability_service, escrow_service
from rentflow.utils.clock import hours_between, start_of_day, utcnow
from rentflow.utils.errors import (
    DatesUnavailable,
    ExtensionAlreadyPending,
    InvalidExtensionDate,
    InvalidTransition,
    NotFound,
)
from rentflow.utils.locks import rental_transaction
from rentflow.utils.money import to_money

EXTENSION_WINDOW_HOURS_DEFAULT = 24


def _window_hours() -> int:
    try:
        return max(1, int(current_app.config.get("EXTENSION_WINDOW_HOURS", EXTENSION_WINDOW_HOURS_DEFAULT)))
    except (TypeError, ValueError):
        return EXTENSION_WINDOW_HOURS_DEFAULT


def hours_until_end(rental: RentalRequest, now=None) -> float:
    """Hours left until the rental's end, taken as midnight UTC of end_date."""
    return hours_between(now or utcnow(), start_of_day(rental.end_date))


def _open_extension(rental_id: int) -> Extension | None:
    # An approved extension is still open until its payment lands.
    return (
        Extension.query.filter(Extension.rental_request_id == rental_id)
        .filter(
            (Extension.status == "pending")
            | ((Extension.status == "approved") & (Extension.payment_confirmed.is_(False)))
        )
        .first()
    )


def _extra_start(ext: Extension) -> date:
    return ext.previous_end_date + timedelta(days=1)


def _require_held_escrow(rental: RentalRequest) -> None:
    account = escrow_service.get_account(rental.id)
    if account is None or account.status != "held":
        raise InvalidTransition(
            "The rental's escrow was already distributed; it can no longer be extended.",
            payload={"escrow_status": account.status if account else None},
        )


def _load_extension(extension_id: int) -> Extension:
    ext = db.session.get(Extension, extension_id)
    if ext is None:
        raise NotFound("Extension not found.")
    return ext


def propose(rental_id: int, renter_id: int, new_end_date: date, message: str | None = None, now=None) -> Extension:
    """Ask the owner for more days while the rental is in its last hours."""

    events: list[DomainEvent] = []
    with rental_transaction(rental_id) as rental:
        if renter_id != rental.renter_id:
            raise InvalidTransition("Only the renter can request an extension.", status_code=403)
        if rental.status != "paid":
            raise InvalidTransition(f"Extensions are only possible while the rental is paid (current: {rental.status}).")

        window = _window_hours()
        left = hours_until_end(rental, now)
        if not (0 < left <= window):
            raise InvalidTransition(
                f"Extensions can be requested during the last {window} hours of the rental.",
                payload={"hours_until_end": round(left, 2)},
            )

        if new_end_date is None or new_end_date <= rental.end_date:
            raise InvalidExtensionDate(
                f"The new end date must be after the current end date ({rental.end_date.isoformat()})."
            )

        _require_held_escrow(rental)

        if _open_extension(rental.id) is not None:
            raise ExtensionAlreadyPending("There is already an extension request waiting for an answer.")

        extra_days = (new_end_date - rental.end_date).days
        daily_rate = to_money(rental.item.daily_rate)
        ext = Extension(
            rental_request_id=rental.id,
            requested_by_user_id=renter_id,
            previous_end_date=rental.end_date,
            new_end_date=new_end_date,
            extra_days=extra_days,
            additional_cost=to_money(daily_rate * extra_days),
            message=(message or "").strip()[:500] or None,
            status="pending",
            payment_confirmed=False,
        )
        db.session.add(ext)
        db.session.flush()

        events.append(
            DomainEvent(
                type="extension_requested",
                rental_id=rental.id,
                recipients=[rental.owner_id],
                title="Extension requested",
                message=f"The renter asked to extend until {new_end_date.isoformat()} ({extra_days} extra day(s)).",
                related_id=ext.id,
                meta={"additional_cost": str(ext.additional_cost), "extra_days": extra_days},
            )
        )
        current_app.logger.info(
            "[extensions] rental=%s proposed ext=%s until %s cost=%s",
            rental.id,
            ext.id,
            new_end_date,
            ext.additional_cost,
        )
    publish(events)
    return ext


def respond(extension_id: int, owner_id: int, approve: bool) -> Extension:
    ext = _load_extension(extension_id)
    events: list[DomainEvent] = []
    with rental_transaction(ext.rental_request_id) as rental:
        db.session.refresh(ext)
        if owner_id != rental.owner_id:
            raise InvalidTransition("Only the owner can answer an extension request.", status_code=403)
        if ext.status != "pending":
            raise InvalidTransition(f"This extension was already {ext.status}.")

        if approve:
            _require_held_escrow(rental)
            # The extra days stay reserved while the renter pays.
            availability_service.block_dates(rental.item_id, _extra_start(ext), ext.new_end_date, rental.id)

        ext.status = "approved" if approve else "declined"
        ext.responded_at = utcnow()

        if approve:
            title = "Extension approved"
            text = f"The owner approved the extension. Pay {ext.additional_cost} to confirm it."
        else:
            title = "Extension declined"
            text = f"The owner declined the extension. The rental still ends on {rental.end_date.isoformat()}."
        events.append(
            DomainEvent(
                type=f"extension_{ext.status}",
                rental_id=rental.id,
                recipients=[rental.renter_id],
                title=title,
                message=text,
                related_id=ext.id,
            )
        )
        current_app.logger.info("[extensions] rental=%s ext=%s %s", rental.id, ext.id, ext.status)
    publish(events)
    return ext


def confirm_payment(ext: Extension, rental: RentalRequest, processor_txn_id: str) -> list[DomainEvent]:
    """Processor success for an extension; caller holds the rental transaction."""

    if ext.payment_confirmed:
        current_app.logger.info("[extensions] ext=%s duplicate payment txn=%s ignored", ext.id, processor_txn_id)
        return []
    if ext.status != "approved":
        raise InvalidTransition(
            f"Payment arrived for a {ext.status} extension.",
            payload={"stale": True, "status": ext.status},
        )
    if rental.status != "paid" or rental.end_date != ext.previous_end_date:
        raise InvalidTransition(
            "Payment arrived for an extension that no longer applies.",
            payload={"stale": True, "status": rental.status},
        )

    try:
        # Normally already reserved on approval, in which case this is a no-op.
        availability_service.block_dates(rental.item_id, _extra_start(ext), ext.new_end_date, rental.id)
    except DatesUnavailable as err:
        raise InvalidTransition(
            "Payment arrived for an extension whose days are booked by another rental.",
            payload={"stale": True, "conflicting_rental_id": err.payload.get("conflicting_rental_id")},
        )

    escrow_service.add_extension_funds(rental.id, ext.additional_cost, ext.id)
    rental.total_amount = to_money(rental.total_amount) + to_money(ext.additional_cost)
    rental.end_date = ext.new_end_date

    ext.payment_confirmed = True
    ext.processor_txn_id = processor_txn_id
    ext.confirmed_at = utcnow()

    current_app.logger.info("[extensions] rental=%s ext=%s paid, end_date -> %s", rental.id, ext.id, ext.new_end_date)
    return [
        DomainEvent(
            type="extension_confirmed",
            rental_id=rental.id,
            recipients=[rental.renter_id, rental.owner_id],
            title="Extension confirmed",
            message=f"The rental now ends on {ext.new_end_date.isoformat()}.",
            related_id=ext.id,
        )
    ]


def record_payment_failure(ext: Extension, processor_txn_id: str) -> list[DomainEvent]:
    current_app.logger.info("[extensions] ext=%s payment failed txn=%s", ext.id, processor_txn_id)
    if ext.status != "approved" or ext.payment_confirmed:
        return []
    return [
        DomainEvent(
            type="extension_payment_failed",
            rental_id=ext.rental_request_id,
            recipients=[ext.requested_by_user_id],
            title="Extension payment failed",
            message="The extension payment did not go through.",
            related_id=ext.id,
            discriminator=processor_txn_id,
        )
    ]


def release_unpaid_holds(rental: RentalRequest) -> int:
    """Free the days reserved by approved extensions that were never paid. Caller holds the transaction."""

    released = 0
    unpaid = Extension.query.filter_by(rental_request_id=rental.id, status="approved", payment_confirmed=False).all()
    for ext in unpaid:
        released += availability_service.release_range(rental.id, _extra_start(ext), ext.new_end_date)
    if released:
        current_app.logger.info("[extensions] rental=%s released %s unpaid extension hold(s)", rental.id, released)
    return released


def extension_to_dict(ext: Extension) -> dict:
    return {
        "id": ext.id,
        "rental_request_id": ext.rental_request_id,
        "requested_by_user_id": ext.requested_by_user_id,
        "previous_end_date": ext.previous_end_date.isoformat(),
        "new_end_date": ext.new_end_date.isoformat(),
        "extra_days": ext.extra_days,
        "additional_cost": str(to_money(ext.additional_cost)),
        "message": ext.message,
        "status": ext.status,
        "payment_confirmed": bool(ext.payment_confirmed),
        "created_at": ext.created_at.isoformat() if ext.created_at else None,
        "responded_at": ext.responded_at.isoformat() if ext.responded_at else None,
        "confirmed_at": ext.confirmed_at.isoformat() if ext.confirmed_at else None,
    }


def list_extensions(rental_id: int) -> list[dict]:
    rows = (
        Extension.query.filter_by(rental_request_id=rental_id)
        .order_by(Extension.created_at.desc(), Extension.id.desc())
        .all()
    )
    return [extension_to_dict(e) for e in rows]
