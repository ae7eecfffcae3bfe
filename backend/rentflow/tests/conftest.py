import itertools
from datetime import timedelta
from decimal import Decimal

import pytest

from sqlalchemy.pool import StaticPool
from flask_jwt_extended import create_access_token

from rentflow import create_app
from rentflow.config import TestConfig as BaseTestConfig
from rentflow.extensions import db

# Register every mapper/table before create_all
import rentflow.models  # noqa: F401
from rentflow.models.item import Item
from rentflow.models.rental_request import RentalRequest
from rentflow.services import lifecycle_service, payment_callback_service
from rentflow.utils.clock import utcnow

ADMIN_ID = 9001

_user_ids = itertools.count(1000)
_txn_ids = itertools.count(1)


class PytestConfig(BaseTestConfig):
	SQLALCHEMY_DATABASE_URI = "sqlite://"
	SQLALCHEMY_ENGINE_OPTIONS = {
		"connect_args": {"check_same_thread": False},
		"poolclass": StaticPool,
	}
	JWT_SECRET_KEY = "test-secret"
	ADMIN_USER_IDS = [ADMIN_ID]
	PAYMENT_WEBHOOK_SECRET = ""


@pytest.fixture(scope="session")
def app():
	app = create_app(PytestConfig)
	with app.app_context():
		db.create_all()
		yield app
		db.session.remove()
		db.drop_all()


@pytest.fixture()
def client(app):
	return app.test_client()


@pytest.fixture()
def db_session(app):
	with app.app_context():
		yield db.session
		db.session.rollback()


@pytest.fixture()
def new_user_id():
	def _new_user_id() -> int:
		return next(_user_ids)

	return _new_user_id


@pytest.fixture()
def make_token(app):
	def _make_token(user_id: int, roles: list[str] | None = None) -> str:
		roles = roles or []
		with app.app_context():
			return create_access_token(identity=str(user_id), additional_claims={"roles": roles})

	return _make_token


@pytest.fixture()
def auth_header(make_token):
	def _auth_header(user_id: int, roles: list[str] | None = None) -> dict:
		token = make_token(user_id, roles=roles)
		return {"Authorization": f"Bearer {token}"}

	return _auth_header


@pytest.fixture()
def admin_id():
	return ADMIN_ID


@pytest.fixture()
def admin_header(auth_header):
	return auth_header(ADMIN_ID, roles=["ADMIN"])


@pytest.fixture()
def make_item(db_session, new_user_id):
	def _make_item(
		owner_id: int | None = None,
		title: str = "Camping tent",
		daily_rate: str = "20.00",
		deposit: str = "50.00",
		instant_booking: bool = False,
	) -> Item:
		item = Item(
			owner_id=owner_id or new_user_id(),
			title=title,
			daily_rate=Decimal(daily_rate),
			deposit=Decimal(deposit),
			instant_booking=instant_booking,
		)
		db_session.add(item)
		db_session.commit()
		return item

	return _make_item


@pytest.fixture()
def next_txn_id():
	def _next_txn_id(prefix: str = "txn") -> str:
		return f"{prefix}_{next(_txn_ids)}"

	return _next_txn_id


@pytest.fixture()
def pay(next_txn_id):
	"""Deliver a processor callback the way the webhook route does."""

	def _pay(rental_id: int | None = None, outcome: str = "succeeded", txn: str | None = None, extension_id: int | None = None) -> dict:
		return payment_callback_service.handle_callback(
			{
				"rental_id": rental_id if extension_id is None else None,
				"extension_id": extension_id,
				"processor_txn_id": txn or next_txn_id(),
				"outcome": outcome,
			}
		)

	return _pay


@pytest.fixture()
def make_rental(db_session, make_item, new_user_id, pay):
	"""
	A rental driven through the real operations up to the requested status.
	Dates start a few days out so they never collide with the validation of
	past start dates.
	"""

	def _make_rental(
		status: str = "pending",
		total_amount: str = "100.00",
		item: Item | None = None,
		renter_id: int | None = None,
		start_in_days: int = 3,
		days: int = 3,
	) -> RentalRequest:
		item = item or make_item()
		renter_id = renter_id or new_user_id()
		start = utcnow().date() + timedelta(days=start_in_days)
		end = start + timedelta(days=days - 1)

		rental = lifecycle_service.create_request(item.id, renter_id, start, end, total_amount)
		if status in ("approved", "paid") and rental.status == "pending":
			rental = lifecycle_service.approve(rental.id, item.owner_id)
		if status == "paid":
			pay(rental.id)
		return db_session.get(RentalRequest, rental.id)

	return _make_rental


@pytest.fixture()
def valid_report():
	def _valid_report(report_type: str = "pickup", **overrides) -> dict:
		body = {
			"report_type": report_type,
			"photos": ["uploads/front.jpg", "uploads/back.jpg"],
			"signature": "signed-by-party",
		}
		body.update(overrides)
		return body

	return _valid_report


@pytest.fixture()
def file_all_reports(client, auth_header, valid_report):
	"""Both parties file the given phase over HTTP."""

	def _file(rental: RentalRequest, report_type: str) -> None:
		for user_id in (rental.renter_id, rental.owner_id):
			resp = client.post(
				f"/api/rentals/{rental.id}/reports",
				json=valid_report(report_type),
				headers=auth_header(user_id),
			)
			assert resp.status_code == 201, resp.get_json()

	return _file
