from decimal import Decimal

import pytest

from rentflow.extensions import db
from rentflow.models.dispute import Dispute
from rentflow.models.notification import Notification
from rentflow.services import dispute_service, escrow_service
from rentflow.utils.errors import InvalidTransition


def _code(resp) -> str | None:
	return (resp.get_json() or {}).get("payload", {}).get("code")


def _open_dispute(client, auth_header, rental, user_id=None, reason="item_damaged"):
	resp = client.post(
		f"/api/rentals/{rental.id}/disputes",
		json={"reason": reason, "description": "The lens arrived cracked", "evidence": ["uploads/lens.jpg"]},
		headers=auth_header(user_id or rental.renter_id),
	)
	assert resp.status_code == 201, resp.get_json()
	return resp.get_json()["data"]


def test_split_resolution_nets_the_escrow(client, auth_header, admin_header, make_rental, admin_id):
	rental = make_rental(status="paid", total_amount="100.00")

	dispute = _open_dispute(client, auth_header, rental)
	assert dispute["status"] == "open"
	assert dispute["against_user_id"] == rental.owner_id

	# Counterparty and administrators hear about it, the filer does not
	assert Notification.query.filter_by(user_id=rental.owner_id, type="dispute_filed").count() == 1
	assert Notification.query.filter_by(user_id=admin_id, type="dispute_filed", related_id=dispute["id"]).count() == 1
	assert Notification.query.filter_by(user_id=rental.renter_id, type="dispute_filed").count() == 0

	queue = client.get("/api/admin/disputes?per_page=50", headers=admin_header).get_json()["data"]
	assert dispute["id"] in [d["id"] for d in queue["items"]]

	resp = client.post(
		f"/api/admin/disputes/{dispute['id']}/resolve",
		json={"decision": "split", "refund_to_renter": "30.00", "charge_to_owner": "70.00", "message": "Shared fault"},
		headers=admin_header,
	)
	assert resp.status_code == 200, resp.get_json()
	data = resp.get_json()["data"]
	assert data["status"] == "resolved"
	assert data["resolved_by_user_id"] == admin_id

	account = escrow_service.get_account(rental.id)
	assert account.status == "settled"
	assert account.renter_refunded == Decimal("30.00")
	assert account.owner_paid == Decimal("70.00")
	assert account.renter_refunded + account.owner_paid == account.rental_amount

	queue = client.get("/api/admin/disputes?per_page=50", headers=admin_header).get_json()["data"]
	assert dispute["id"] not in [d["id"] for d in queue["items"]]


def test_dispute_needs_paid_or_completed_rental(client, auth_header, make_rental):
	for status in ("pending", "approved"):
		rental = make_rental(status=status)
		resp = client.post(
			f"/api/rentals/{rental.id}/disputes",
			json={"reason": "other", "description": "No show"},
			headers=auth_header(rental.renter_id),
		)
		assert resp.status_code == 409
		assert _code(resp) == "InvalidTransition"
		assert Dispute.query.filter_by(rental_request_id=rental.id).count() == 0


def test_resolution_cannot_exceed_escrow(client, admin_header, auth_header, make_rental):
	rental = make_rental(status="paid", total_amount="100.00")
	dispute = _open_dispute(client, auth_header, rental)

	resp = client.post(
		f"/api/admin/disputes/{dispute['id']}/resolve",
		json={"decision": "split", "refund_to_renter": "60.00", "charge_to_owner": "50.00"},
		headers=admin_header,
	)
	assert resp.status_code == 400
	assert _code(resp) == "SettlementExceedsEscrow"

	db.session.expire_all()
	assert db.session.get(Dispute, dispute["id"]).status == "open"
	assert escrow_service.get_account(rental.id).status == "held"


def test_second_resolve_is_rejected(client, admin_header, auth_header, make_rental):
	rental = make_rental(status="paid")
	dispute = _open_dispute(client, auth_header, rental)
	body = {"decision": "favor_owner", "refund_to_renter": "0", "charge_to_owner": "100.00"}

	first = client.post(f"/api/admin/disputes/{dispute['id']}/resolve", json=body, headers=admin_header)
	assert first.status_code == 200

	second = client.post(f"/api/admin/disputes/{dispute['id']}/resolve", json=body, headers=admin_header)
	assert second.status_code == 409
	assert _code(second) == "AlreadyResolved"

	resp = client.patch(f"/api/admin/disputes/{dispute['id']}/status", json={"status": "open"}, headers=admin_header)
	assert resp.status_code == 409


def test_admin_surface_requires_admin_role(client, auth_header, make_rental):
	rental = make_rental(status="paid")
	dispute = _open_dispute(client, auth_header, rental)
	body = {
		"decision": "favor_renter",
		"refund_to_renter": "100.00",
		"charge_to_owner": "0",
		# An advisory suggestion never stands in for the admin check
		"suggestion": {"decision": "favor_renter", "confidence": 0.97},
	}

	resp = client.post(f"/api/admin/disputes/{dispute['id']}/resolve", json=body, headers=auth_header(rental.renter_id))
	assert resp.status_code == 403
	assert client.get("/api/admin/disputes", headers=auth_header(rental.owner_id)).status_code == 403


def test_status_changes_and_closed_disputes(client, admin_header, auth_header, make_rental, admin_id):
	rental = make_rental(status="paid")
	dispute = _open_dispute(client, auth_header, rental, user_id=rental.owner_id, reason="item_not_returned")
	url = f"/api/admin/disputes/{dispute['id']}"

	resp = client.patch(f"{url}/status", json={"status": "under_review"}, headers=admin_header)
	assert resp.status_code == 200
	assert resp.get_json()["data"]["status"] == "under_review"

	# "resolved" is only reachable through resolve
	resp = client.patch(f"{url}/status", json={"status": "resolved"}, headers=admin_header)
	assert resp.status_code == 400
	with pytest.raises(InvalidTransition):
		dispute_service.set_status(dispute["id"], admin_id, "resolved")

	resp = client.patch(f"{url}/status", json={"status": "closed"}, headers=admin_header)
	assert resp.status_code == 200

	body = {"decision": "favor_owner", "refund_to_renter": "0", "charge_to_owner": "10.00"}
	resp = client.post(f"{url}/resolve", json=body, headers=admin_header)
	assert resp.status_code == 409
	assert _code(resp) == "InvalidTransition"

	# Reopened disputes can be settled again
	client.patch(f"{url}/status", json={"status": "open"}, headers=admin_header)
	resp = client.post(f"{url}/resolve", json=body, headers=admin_header)
	assert resp.status_code == 200

	# Both parties were told about each status change
	assert Notification.query.filter_by(user_id=rental.renter_id, type="dispute_status_changed").count() == 3


def test_presets_fill_resolve_inputs(client, admin_header, auth_header, make_rental):
	rental = make_rental(status="paid", total_amount="75.55")
	dispute = _open_dispute(client, auth_header, rental)
	url = f"/api/admin/disputes/{dispute['id']}/preset"

	favor_renter = client.get(f"{url}?decision=favor_renter", headers=admin_header).get_json()["data"]
	assert (favor_renter["refund_to_renter"], favor_renter["charge_to_owner"]) == ("75.55", "0.00")

	favor_owner = client.get(f"{url}?decision=favor_owner", headers=admin_header).get_json()["data"]
	assert (favor_owner["refund_to_renter"], favor_owner["charge_to_owner"]) == ("0.00", "75.55")

	split = client.get(f"{url}?decision=split", headers=admin_header).get_json()["data"]
	assert Decimal(split["refund_to_renter"]) + Decimal(split["charge_to_owner"]) == Decimal("75.55")

	assert client.get(f"{url}?decision=coin_flip", headers=admin_header).status_code == 400


def test_suggestion_is_recorded_not_applied(client, admin_header, auth_header, make_rental):
	rental = make_rental(status="paid")
	dispute = _open_dispute(client, auth_header, rental)

	resp = client.post(
		f"/api/admin/disputes/{dispute['id']}/resolve",
		json={
			"decision": "split",
			"refund_to_renter": "40.00",
			"charge_to_owner": "60.00",
			"suggestion": {"decision": "favor_renter", "refund_to_renter": "100.00"},
		},
		headers=admin_header,
	)
	assert resp.status_code == 200
	data = resp.get_json()["data"]
	assert data["advisory_suggestion"]["decision"] == "favor_renter"
	assert data["refund_to_renter"] == "40.00"
	assert escrow_service.get_account(rental.id).renter_refunded == Decimal("40.00")

	history = client.get("/api/admin/disputes/history?reason=item_damaged", headers=admin_header).get_json()["data"]
	assert dispute["id"] in [d["id"] for d in history]


def test_parties_see_their_disputes(client, auth_header, make_rental, new_user_id):
	rental = make_rental(status="paid")
	dispute = _open_dispute(client, auth_header, rental)

	resp = client.get(f"/api/disputes/{dispute['id']}", headers=auth_header(rental.owner_id))
	assert resp.status_code == 200
	assert resp.get_json()["data"]["evidence_refs"] == ["uploads/lens.jpg"]

	assert client.get(f"/api/disputes/{dispute['id']}", headers=auth_header(new_user_id())).status_code == 404

	listed = client.get(f"/api/rentals/{rental.id}/disputes", headers=auth_header(rental.renter_id)).get_json()["data"]
	assert [d["id"] for d in listed] == [dispute["id"]]
