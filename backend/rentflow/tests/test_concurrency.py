import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from rentflow import create_app
from rentflow.config import TestConfig
from rentflow.extensions import db
from rentflow.models.availability_block import AvailabilityBlock
from rentflow.models.item import Item
from rentflow.models.rental_request import RentalRequest
from rentflow.services import escrow_service, lifecycle_service, payment_callback_service
from rentflow.utils.clock import utcnow
from rentflow.utils.errors import InvalidTransition
from rentflow.utils.locks import _rental_locks, rental_transaction


@pytest.fixture()
def threaded_app(tmp_path):
	"""A file-backed database so every thread gets a real connection of its own."""

	class ThreadedConfig(TestConfig):
		SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'rentflow.db'}"
		SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}
		JWT_SECRET_KEY = "test-secret"

	app = create_app(ThreadedConfig)
	with app.app_context():
		db.create_all()
	yield app
	with app.app_context():
		db.session.remove()
		db.drop_all()
		db.engine.dispose()


def _pending_rental(app) -> int:
	with app.app_context():
		item = Item(owner_id=1, title="Kayak", daily_rate=Decimal("30.00"), deposit=Decimal("80.00"))
		db.session.add(item)
		db.session.commit()
		start = utcnow().date() + timedelta(days=5)
		rental = lifecycle_service.create_request(item.id, 2, start, start + timedelta(days=1), "60.00")
		return rental.id


def _race(app, worker, rounds: int = 2) -> list:
	barrier = threading.Barrier(rounds)
	results: list = []
	guard = threading.Lock()

	def run(i):
		with app.app_context():
			try:
				barrier.wait()
				outcome = worker(i)
			except Exception as exc:  # collected for the assertions below
				outcome = exc
			finally:
				db.session.remove()
		with guard:
			results.append(outcome)

	threads = [threading.Thread(target=run, args=(i,)) for i in range(rounds)]
	for t in threads:
		t.start()
	for t in threads:
		t.join(timeout=30)
	return results


def test_concurrent_approvals_apply_once(threaded_app):
	rental_id = _pending_rental(threaded_app)

	def approve(_):
		lifecycle_service.approve(rental_id, 1)
		return "ok"

	results = _race(threaded_app, approve)

	assert results.count("ok") == 1
	failures = [r for r in results if r != "ok"]
	assert len(failures) == 1
	assert isinstance(failures[0], InvalidTransition)

	with threaded_app.app_context():
		assert db.session.get(RentalRequest, rental_id).status == "approved"
		assert AvailabilityBlock.query.filter_by(rental_request_id=rental_id).count() == 1

	# Nobody holds it any more, so the registry forgot it
	assert rental_id not in _rental_locks


def test_concurrent_duplicate_callbacks_hold_once(threaded_app):
	rental_id = _pending_rental(threaded_app)
	with threaded_app.app_context():
		lifecycle_service.approve(rental_id, 1)

	def deliver(_):
		return payment_callback_service.handle_callback(
			{"rental_id": rental_id, "extension_id": None, "processor_txn_id": "txn_race", "outcome": "succeeded"}
		)

	results = _race(threaded_app, deliver)

	assert sorted(r["duplicate"] for r in results) == [False, True]
	with threaded_app.app_context():
		account = escrow_service.get_account(rental_id)
		assert account.rental_amount == Decimal("60.00")
		assert [e.kind for e in account.entries] == ["hold"]


def test_lock_registry_drops_idle_rentals(threaded_app):
	rental_id = _pending_rental(threaded_app)

	with threaded_app.app_context():
		with rental_transaction(rental_id):
			# Re-entrant for the same thread
			with rental_transaction(rental_id) as rental:
				assert rental.status == "pending"
			assert rental_id in _rental_locks
		assert rental_id not in _rental_locks

		with pytest.raises(InvalidTransition):
			with rental_transaction(rental_id):
				raise InvalidTransition("boom")
		assert rental_id not in _rental_locks
