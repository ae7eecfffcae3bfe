from datetime import timedelta

from rentflow.extensions import db
from rentflow.models.availability_block import AvailabilityBlock
from rentflow.models.notification import Notification
from rentflow.models.processor_event import ProcessorEvent
from rentflow.models.rental_request import RentalRequest
from rentflow.services import deadline_watcher, lifecycle_service
from rentflow.utils.clock import utcnow


def _age(db_session, rental_id: int, **delta) -> RentalRequest:
	rental = db_session.get(RentalRequest, rental_id)
	rental.last_status_change_at = utcnow() - timedelta(**delta)
	db_session.commit()
	return rental


def test_unpaid_rental_cancelled_after_grace(client, make_rental, db_session):
	rental = make_rental(status="approved")
	approved_at = rental.last_status_change_at
	assert AvailabilityBlock.query.filter_by(rental_request_id=rental.id).count() == 1

	result = deadline_watcher.sweep(now=approved_at + timedelta(hours=25))
	assert rental.id in result["cancelled"]

	db_session.expire_all()
	rental = db_session.get(RentalRequest, rental.id)
	assert rental.status == "cancelled"
	assert rental.cancel_reason == "payment window expired"
	assert AvailabilityBlock.query.filter_by(rental_request_id=rental.id).count() == 0

	for user_id in (rental.renter_id, rental.owner_id):
		assert Notification.query.filter_by(user_id=user_id, type="rental_cancelled").count() == 1

	# The processor shows up late: rejected, nothing recorded
	resp = client.post(
		"/api/payments/callback",
		json={"rental_id": rental.id, "processor_txn_id": f"late_{rental.id}", "outcome": "succeeded"},
	)
	assert resp.status_code == 409
	assert resp.get_json()["payload"]["code"] == "InvalidTransition"
	assert resp.get_json()["payload"]["stale"] is True
	assert ProcessorEvent.query.filter_by(processor_txn_id=f"late_{rental.id}").count() == 0


def test_still_inside_grace_period(make_rental, db_session):
	rental = make_rental(status="approved")

	result = deadline_watcher.sweep(now=rental.last_status_change_at + timedelta(hours=23))
	assert rental.id not in result["cancelled"]

	db_session.expire_all()
	assert db_session.get(RentalRequest, rental.id).status == "approved"
	assert deadline_watcher.payment_expired(rental, rental.last_status_change_at + timedelta(hours=24)) is True


def test_paid_and_pending_rentals_untouched(make_rental, db_session):
	paid = make_rental(status="paid")
	pending = make_rental(status="pending")
	later = utcnow() + timedelta(hours=48)

	result = deadline_watcher.sweep(now=later)
	assert paid.id not in result["cancelled"]
	assert pending.id not in result["cancelled"]

	db_session.expire_all()
	assert db_session.get(RentalRequest, paid.id).status == "paid"
	assert db_session.get(RentalRequest, pending.id).status == "pending"


def test_paid_just_in_time_wins(make_rental, pay, db_session):
	rental = make_rental(status="approved")
	pay(rental.id)

	assert deadline_watcher.expire_unpaid(rental.id, now=utcnow() + timedelta(hours=30)) is False
	db_session.expire_all()
	assert db_session.get(RentalRequest, rental.id).status == "paid"


def test_completed_rentals_archived_after_retention(make_rental, file_all_reports, db_session):
	rental = make_rental(status="paid")
	file_all_reports(rental, "pickup")
	file_all_reports(rental, "return")
	rental = lifecycle_service.complete(rental.id, rental.owner_id)
	completed_at = rental.last_status_change_at

	result = deadline_watcher.sweep(now=completed_at + timedelta(days=29))
	assert rental.id not in result["archived"]

	result = deadline_watcher.sweep(now=completed_at + timedelta(days=31))
	assert rental.id in result["archived"]

	db_session.expire_all()
	assert db_session.get(RentalRequest, rental.id).status == "archived"


def test_sweep_command(app, make_rental, db_session):
	rental = make_rental(status="approved")
	_age(db_session, rental.id, hours=30)

	result = app.test_cli_runner().invoke(args=["deadlines", "sweep"])
	assert result.exit_code == 0, result.output
	assert "cancelled=" in result.output

	db_session.expire_all()
	assert db_session.get(RentalRequest, rental.id).status == "cancelled"


def test_run_forever_stops_after_max_runs(app, make_rental, db_session):
	rental = make_rental(status="approved")
	_age(db_session, rental.id, hours=30)

	deadline_watcher.run_forever(interval_seconds=1, max_runs=1)

	db.session.expire_all()
	assert db.session.get(RentalRequest, rental.id).status == "cancelled"
