import hashlib
import hmac

from flask import current_app
from sqlalchemy.exc import IntegrityError

from rentflow.events import publish
from rentflow.extensions.db import db
from rentflow.models.extension import Extension
from rentflow.models.processor_event import ProcessorEvent
from rentflow.services import extension_service, lifecycle_service
from rentflow.utils.errors import ApiError, NotFound
from rentflow.utils.locks import rental_transaction

OUTCOMES = ("succeeded", "failed")


class _AlreadyApplied(Exception):
    pass


def verify_signature(raw_body: bytes, signature: str | None) -> None:
    """HMAC-SHA256 of the raw body, hex encoded. Skipped when no secret is configured."""

    secret = current_app.config.get("PAYMENT_WEBHOOK_SECRET") or ""
    if not secret:
        return
    expected = hmac.new(secret.encode("utf-8"), raw_body or b"", hashlib.sha256).hexdigest()
    if not signature or not hmac.compare_digest(expected, signature.strip().lower()):
        current_app.logger.warning("[payments] callback rejected: bad signature")
        raise ApiError("Invalid signature", 401)


def already_applied(processor_txn_id: str) -> bool:
    return ProcessorEvent.query.filter_by(processor_txn_id=processor_txn_id).first() is not None


def handle_callback(data: dict) -> dict:
    """
    Apply one processor callback.

    Replays (same processor_txn_id) are dropped before taking the rental lock,
    and again inside it through the unique index, so a success is applied once.
    """

    txn = str(data["processor_txn_id"]).strip()
    outcome = data["outcome"]
    rental_id = data.get("rental_id")
    extension_id = data.get("extension_id")

    if already_applied(txn):
        current_app.logger.info("[payments] txn=%s replay dropped", txn)
        return {"processor_txn_id": txn, "applied": False, "duplicate": True}

    ext = None
    if extension_id is not None:
        ext = db.session.get(Extension, extension_id)
        if ext is None:
            current_app.logger.warning("[payments] txn=%s unknown extension=%s", txn, extension_id)
            raise NotFound("Extension not found.")
        rental_id = ext.rental_request_id

    try:
        with rental_transaction(rental_id) as rental:
            db.session.add(
                ProcessorEvent(
                    processor_txn_id=txn,
                    rental_request_id=rental.id,
                    extension_id=ext.id if ext else None,
                    outcome=outcome,
                )
            )
            try:
                db.session.flush()
            except IntegrityError:
                raise _AlreadyApplied()

            if ext is not None:
                db.session.refresh(ext)
                if outcome == "succeeded":
                    events = extension_service.confirm_payment(ext, rental, txn)
                else:
                    events = extension_service.record_payment_failure(ext, txn)
            elif outcome == "succeeded":
                events = lifecycle_service.confirm_payment(rental, txn)
            else:
                events = lifecycle_service.record_payment_failure(rental, txn)
    except _AlreadyApplied:
        current_app.logger.info("[payments] txn=%s replay dropped (concurrent)", txn)
        return {"processor_txn_id": txn, "applied": False, "duplicate": True}
    except ApiError as err:
        # Never reaches a user; the processor gets the error and support gets the log.
        current_app.logger.warning(
            "[payments] txn=%s rental=%s extension=%s outcome=%s rejected: %s",
            txn,
            rental_id,
            extension_id,
            outcome,
            err.message,
        )
        raise

    publish(events)
    current_app.logger.info("[payments] txn=%s rental=%s outcome=%s applied", txn, rental_id, outcome)
    return {"processor_txn_id": txn, "applied": True, "duplicate": False}
