import threading
from contextlib import contextmanager

from rentflow.extensions.db import db
from rentflow.models.rental_request import RentalRequest
from rentflow.utils.errors import NotFound

_registry_guard = threading.Lock()
# rental id -> [lock, number of threads holding or waiting for it]
_rental_locks: dict[int, list] = {}


@contextmanager
def _held(rental_id: int):
    """Hold the rental's lock; the entry is dropped once nobody uses it."""

    with _registry_guard:
        entry = _rental_locks.get(rental_id)
        if entry is None:
            entry = [threading.RLock(), 0]
            _rental_locks[rental_id] = entry
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _rental_locks[rental_id]


@contextmanager
def rental_transaction(rental_id: int):
    """Serialize every mutation of one rental aggregate.

    Holds the in-process lock for the rental and a row lock
    (SELECT ... FOR UPDATE) on the database side, yields the freshly loaded
    rental, commits when the block exits cleanly and rolls back otherwise.
    Nothing slow (notifications, network) may run inside the block.
    """

    try:
        rental_id = int(rental_id)
    except (TypeError, ValueError):
        raise NotFound("Rental not found.")

    with _held(rental_id):
        rental: RentalRequest | None = (
            db.session.query(RentalRequest)
            .filter(RentalRequest.id == rental_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if rental is None:
            db.session.rollback()
            raise NotFound("Rental not found.")

        try:
            yield rental
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
