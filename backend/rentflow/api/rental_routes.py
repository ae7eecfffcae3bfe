from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from rentflow.events import publish
from rentflow.schemas.dispute_schemas import DisputeCreateSchema
from rentflow.schemas.extension_schemas import ExtensionProposeSchema
from rentflow.schemas.rental_schemas import (
    ConditionReportSchema,
    InquirySchema,
    ReasonSchema,
    RentalCreateSchema,
    SubmitRequestSchema,
)
from rentflow.services import (
    availability_service,
    condition_report_service,
    dispute_service,
    escrow_service,
    extension_service,
    lifecycle_service,
)
from rentflow.utils.auth import current_user_id, is_admin
from rentflow.utils.locks import rental_transaction
from rentflow.utils.responses import success_response

bp = Blueprint("rentals", __name__)

rental_create_schema = RentalCreateSchema()
inquiry_schema = InquirySchema()
submit_schema = SubmitRequestSchema()
reason_schema = ReasonSchema()
report_schema = ConditionReportSchema()
extension_schema = ExtensionProposeSchema()
dispute_create_schema = DisputeCreateSchema()


def _visible_rental(rental_id: int):
    return lifecycle_service.get_rental(rental_id, current_user_id(), admin=is_admin())


@bp.get("/ping")
def ping():
    return success_response(message="rentals ok")


@bp.post("")
@jwt_required()
def create_rental():
    """
    Request an item for a date range.
    Body JSON:
    {
      "item_id": 1,
      "start_date": "2026-12-10",
      "end_date": "2026-12-12",
      "total_amount": "100.00"
    }
    """
    user_id = current_user_id()
    data = rental_create_schema.load(request.get_json() or {})
    rental = lifecycle_service.create_request(
        data["item_id"], user_id, data["start_date"], data["end_date"], data["total_amount"]
    )
    return success_response(
        data=lifecycle_service.rental_to_dict(rental, viewer_id=user_id),
        message="Rental requested",
        status_code=201,
    )


@bp.post("/inquiries")
@jwt_required()
def open_inquiry():
    user_id = current_user_id()
    data = inquiry_schema.load(request.get_json() or {})
    rental = lifecycle_service.open_inquiry(
        data["item_id"], user_id, data["start_date"], data["end_date"], message=data.get("message")
    )
    return success_response(
        data=lifecycle_service.rental_to_dict(rental, viewer_id=user_id),
        message="Inquiry opened",
        status_code=201,
    )


@bp.get("")
@jwt_required()
def list_rentals():
    """
    Rentals of the authenticated user.
    Query params: ?role=renter|owner, ?status=<status>, ?page, ?per_page
    """
    data = lifecycle_service.list_rentals(
        current_user_id(),
        role=request.args.get("role"),
        status=request.args.get("status"),
        page=request.args.get("page", 1),
        per_page=request.args.get("per_page", 10),
    )
    return success_response(data=data, message="OK")


@bp.get("/<int:rental_id>")
@jwt_required()
def get_rental(rental_id: int):
    rental = _visible_rental(rental_id)
    return success_response(data=lifecycle_service.rental_to_dict(rental, viewer_id=current_user_id()), message="OK")


@bp.post("/<int:rental_id>/submit")
@jwt_required()
def submit_request(rental_id: int):
    user_id = current_user_id()
    data = submit_schema.load(request.get_json() or {})
    rental = lifecycle_service.submit_request(
        rental_id,
        user_id,
        data["total_amount"],
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
    )
    return success_response(data=lifecycle_service.rental_to_dict(rental, viewer_id=user_id), message="Request submitted")


@bp.post("/<int:rental_id>/approve")
@jwt_required()
def approve(rental_id: int):
    user_id = current_user_id()
    rental = lifecycle_service.approve(rental_id, user_id)
    return success_response(data=lifecycle_service.rental_to_dict(rental, viewer_id=user_id), message="Request approved")


@bp.post("/<int:rental_id>/decline")
@jwt_required()
def decline(rental_id: int):
    user_id = current_user_id()
    data = reason_schema.load(request.get_json(silent=True) or {})
    rental = lifecycle_service.decline(rental_id, user_id, reason=data.get("reason"))
    return success_response(data=lifecycle_service.rental_to_dict(rental, viewer_id=user_id), message="Request declined")


@bp.post("/<int:rental_id>/cancel")
@jwt_required()
def cancel(rental_id: int):
    user_id = current_user_id()
    data = reason_schema.load(request.get_json(silent=True) or {})
    rental = lifecycle_service.cancel(rental_id, user_id, reason=data.get("reason"))
    return success_response(data=lifecycle_service.rental_to_dict(rental, viewer_id=user_id), message="Rental cancelled")


@bp.post("/<int:rental_id>/checkout")
@jwt_required()
def checkout(rental_id: int):
    data = lifecycle_service.begin_checkout(rental_id, current_user_id())
    return success_response(data=data, message="Checkout started")


@bp.post("/<int:rental_id>/complete")
@jwt_required()
def complete(rental_id: int):
    user_id = current_user_id()
    rental = lifecycle_service.complete(rental_id, user_id)
    data = lifecycle_service.rental_to_dict(rental, viewer_id=user_id)
    data["escrow"] = escrow_service.account_to_dict(escrow_service.get_account(rental_id))
    return success_response(data=data, message="Rental completed")


@bp.post("/<int:rental_id>/archive")
@jwt_required()
def archive(rental_id: int):
    user_id = current_user_id()
    rental = lifecycle_service.archive(rental_id, user_id)
    return success_response(data=lifecycle_service.rental_to_dict(rental, viewer_id=user_id), message="Rental archived")


@bp.get("/<int:rental_id>/availability")
@jwt_required()
def rental_blocks(rental_id: int):
    _visible_rental(rental_id)
    return success_response(data=availability_service.blocks_for_rental(rental_id), message="OK")


# Condition reports


@bp.get("/<int:rental_id>/reports")
@jwt_required()
def list_reports(rental_id: int):
    _visible_rental(rental_id)
    return success_response(data=condition_report_service.list_reports(rental_id), message="OK")


@bp.post("/<int:rental_id>/reports")
@jwt_required()
def file_report(rental_id: int):
    """
    Body JSON:
    {
      "report_type": "pickup",
      "photos": ["uploads/abc.jpg"],
      "signature": "data:image/png;base64,...",
      "damages": [{"severity": "minor", "description": "scratch on lid"}],
      "notes": "..."
    }
    """
    user_id = current_user_id()
    data = report_schema.load(request.get_json() or {})
    with rental_transaction(rental_id) as rental:
        report, events = condition_report_service.file_report(
            rental,
            data["report_type"],
            user_id,
            data.get("photos"),
            data.get("signature"),
            damages=data.get("damages"),
            notes=data.get("notes"),
        )
    publish(events)
    return success_response(
        data=condition_report_service.report_to_dict(report),
        message="Condition report filed",
        status_code=201,
    )


@bp.get("/<int:rental_id>/release-status")
@jwt_required()
def release_status(rental_id: int):
    _visible_rental(rental_id)
    reasons = condition_report_service.release_blockers(rental_id)
    counts = condition_report_service.report_counts(rental_id)
    return success_response(
        data={
            "can_release_payment": not reasons,
            "reasons": reasons,
            "phase": condition_report_service.phase_of(counts),
            "counts": counts,
        },
        message="OK",
    )


# Escrow


@bp.get("/<int:rental_id>/escrow")
@jwt_required()
def escrow_statement(rental_id: int):
    _visible_rental(rental_id)
    return success_response(
        data=escrow_service.account_to_dict(escrow_service.get_account(rental_id)),
        message="OK",
    )


# Extensions


@bp.get("/<int:rental_id>/extensions")
@jwt_required()
def list_extensions(rental_id: int):
    _visible_rental(rental_id)
    return success_response(data=extension_service.list_extensions(rental_id), message="OK")


@bp.post("/<int:rental_id>/extensions")
@jwt_required()
def propose_extension(rental_id: int):
    data = extension_schema.load(request.get_json() or {})
    ext = extension_service.propose(rental_id, current_user_id(), data["new_end_date"], message=data.get("message"))
    return success_response(
        data=extension_service.extension_to_dict(ext),
        message="Extension requested",
        status_code=201,
    )


# Disputes


@bp.get("/<int:rental_id>/disputes")
@jwt_required()
def list_disputes(rental_id: int):
    _visible_rental(rental_id)
    return success_response(data=dispute_service.list_for_rental(rental_id), message="OK")


@bp.post("/<int:rental_id>/disputes")
@jwt_required()
def file_dispute(rental_id: int):
    data = dispute_create_schema.load(request.get_json() or {})
    dispute = dispute_service.file_dispute(
        rental_id,
        current_user_id(),
        data["reason"],
        data["description"],
        evidence=data.get("evidence"),
    )
    return success_response(
        data=dispute_service.dispute_to_dict(dispute),
        message="Dispute opened",
        status_code=201,
    )
