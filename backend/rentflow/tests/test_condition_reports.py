import pytest

from rentflow.extensions import db
from rentflow.models.condition_report import ConditionReport
from rentflow.models.notification import Notification
from rentflow.services import condition_report_service
from rentflow.utils.errors import PrematureReturn
from rentflow.utils.locks import rental_transaction


def _file(client, auth_header, rental, user_id, body):
	return client.post(f"/api/rentals/{rental.id}/reports", json=body, headers=auth_header(user_id))


def _code(resp) -> str | None:
	return (resp.get_json() or {}).get("payload", {}).get("code")


def test_return_before_both_pickups_is_premature(client, auth_header, make_rental, valid_report):
	rental = make_rental(status="paid")

	resp = _file(client, auth_header, rental, rental.renter_id, valid_report("return"))
	assert resp.status_code == 409
	assert _code(resp) == "PrematureReturn"
	assert "Both pickup reports required before return (0/2 filed)" in resp.get_json()["message"]

	resp = _file(client, auth_header, rental, rental.owner_id, valid_report("pickup"))
	assert resp.status_code == 201

	resp = _file(client, auth_header, rental, rental.renter_id, valid_report("return"))
	assert resp.status_code == 409
	assert "(1/2 filed)" in resp.get_json()["message"]

	resp = _file(client, auth_header, rental, rental.renter_id, valid_report("pickup"))
	assert resp.status_code == 201

	# Exactly two pickups: the return is accepted
	resp = _file(client, auth_header, rental, rental.renter_id, valid_report("return"))
	assert resp.status_code == 201


def test_either_party_can_file_second(client, auth_header, make_rental, valid_report):
	rental = make_rental(status="paid")

	_file(client, auth_header, rental, rental.renter_id, valid_report("pickup"))
	status = client.get(f"/api/rentals/{rental.id}/reports", headers=auth_header(rental.owner_id)).get_json()["data"]
	assert status["phase"] == "pickup_1"

	_file(client, auth_header, rental, rental.owner_id, valid_report("pickup"))
	status = client.get(f"/api/rentals/{rental.id}/reports", headers=auth_header(rental.owner_id)).get_json()["data"]
	assert status["phase"] == "pickup_complete"
	assert status["counts"] == {"pickup": 2, "return": 0}

	_file(client, auth_header, rental, rental.owner_id, valid_report("return"))
	_file(client, auth_header, rental, rental.renter_id, valid_report("return"))
	status = client.get(f"/api/rentals/{rental.id}/reports", headers=auth_header(rental.renter_id)).get_json()["data"]
	assert status["phase"] == "return_complete"
	assert len(status["items"]) == 4

	db.session.refresh(rental)
	assert rental.return_confirmed is True


def test_duplicate_report_rejected(client, auth_header, make_rental, valid_report):
	rental = make_rental(status="paid")

	assert _file(client, auth_header, rental, rental.renter_id, valid_report("pickup")).status_code == 201
	resp = _file(client, auth_header, rental, rental.renter_id, valid_report("pickup"))
	assert resp.status_code == 409
	assert _code(resp) == "DuplicateReport"
	assert ConditionReport.query.filter_by(rental_request_id=rental.id).count() == 1


@pytest.mark.parametrize(
	"overrides,missing",
	[
		({"photos": []}, "photos"),
		({"photos": ["  "]}, "photos"),
		({"signature": ""}, "signature"),
		({"signature": "   "}, "signature"),
	],
)
def test_incomplete_report_rejected(client, auth_header, make_rental, valid_report, overrides, missing):
	rental = make_rental(status="paid")

	resp = _file(client, auth_header, rental, rental.renter_id, valid_report("pickup", **overrides))
	assert resp.status_code == 400
	body = resp.get_json()
	assert body["payload"]["code"] == "IncompleteReport"
	assert missing in body["errors"]


def test_damage_needs_known_severity(client, auth_header, make_rental, valid_report):
	rental = make_rental(status="paid")

	bad = valid_report("pickup", damages=[{"severity": "catastrophic", "description": "Dent"}])
	resp = _file(client, auth_header, rental, rental.renter_id, bad)
	assert resp.status_code == 400
	assert _code(resp) == "IncompleteReport"

	# Empty rows from the form are dropped, real ones kept
	good = valid_report(
		"pickup",
		damages=[
			{"severity": "minor", "description": "Scratch on the lid"},
			{"severity": "", "description": ""},
		],
		notes="Bag zipper is stiff",
	)
	resp = _file(client, auth_header, rental, rental.renter_id, good)
	assert resp.status_code == 201
	data = resp.get_json()["data"]
	assert data["damages"] == [{"severity": "minor", "description": "Scratch on the lid", "photo": None}]
	assert data["notes"] == "Bag zipper is stiff"


def test_reports_only_on_paid_rentals(client, auth_header, make_rental, valid_report):
	rental = make_rental(status="approved")

	resp = _file(client, auth_header, rental, rental.renter_id, valid_report("pickup"))
	assert resp.status_code == 409
	assert _code(resp) == "InvalidTransition"


def test_strangers_cannot_file(client, auth_header, make_rental, valid_report, new_user_id):
	rental = make_rental(status="paid")

	resp = _file(client, auth_header, rental, new_user_id(), valid_report("pickup"))
	assert resp.status_code == 403


def test_release_status_reports_blockers(client, auth_header, make_rental, file_all_reports):
	rental = make_rental(status="paid")

	data = client.get(f"/api/rentals/{rental.id}/release-status", headers=auth_header(rental.owner_id)).get_json()["data"]
	assert data["can_release_payment"] is False
	assert data["reasons"] == ["both return condition reports required (0/2 filed)"]

	file_all_reports(rental, "pickup")
	file_all_reports(rental, "return")

	data = client.get(f"/api/rentals/{rental.id}/release-status", headers=auth_header(rental.owner_id)).get_json()["data"]
	assert data["can_release_payment"] is True
	assert data["reasons"] == []
	assert condition_report_service.can_release_payment(rental.id) is True


def test_second_pickup_unlocks_return_for_both(client, auth_header, make_rental, file_all_reports):
	rental = make_rental(status="paid")
	file_all_reports(rental, "pickup")

	for user_id in (rental.renter_id, rental.owner_id):
		assert Notification.query.filter_by(user_id=user_id, type="return_reporting_unlocked").count() == 1


def test_gate_rejects_premature_return_directly(make_rental):
	rental = make_rental(status="paid")

	with pytest.raises(PrematureReturn):
		with rental_transaction(rental.id) as locked:
			condition_report_service.file_report(locked, "return", rental.renter_id, ["p.jpg"], "sig")

	assert ConditionReport.query.filter_by(rental_request_id=rental.id).count() == 0
