from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from rentflow.schemas.dispute_schemas import DisputeResolveSchema, DisputeStatusSchema
from rentflow.services import dispute_service
from rentflow.utils.auth import require_admin
from rentflow.utils.errors import ApiError
from rentflow.utils.responses import success_response

bp = Blueprint("admin", __name__)

status_schema = DisputeStatusSchema()
resolve_schema = DisputeResolveSchema()


@bp.get("/ping")
def ping_admin():
    return success_response(message="admin ok")


@bp.get("/disputes")
@jwt_required()
def list_disputes():
    """Open and under-review disputes, oldest first."""
    require_admin()

    page = request.args.get("page", 1)
    per_page = request.args.get("per_page", 20)

    data = dispute_service.list_active(page=page, per_page=per_page)
    return success_response(data=data, message="OK")


@bp.get("/disputes/history")
@jwt_required()
def dispute_history():
    require_admin()

    reason = request.args.get("reason")
    limit = request.args.get("limit", 20)
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise ApiError("limit must be an integer", 400)

    data = dispute_service.history(reason=reason, limit=limit)
    return success_response(data=data, message="OK")


@bp.patch("/disputes/<int:dispute_id>/status")
@jwt_required()
def set_dispute_status(dispute_id: int):
    admin_id = require_admin()

    data = status_schema.load(request.get_json() or {})
    dispute = dispute_service.set_status(dispute_id, admin_id, data["status"])
    return success_response(data=dispute_service.dispute_to_dict(dispute), message="Dispute updated")


@bp.get("/disputes/<int:dispute_id>/preset")
@jwt_required()
def dispute_preset(dispute_id: int):
    """?decision=favor_renter|favor_owner|split"""
    require_admin()

    data = dispute_service.resolution_preset(dispute_id, request.args.get("decision"))
    return success_response(data=data, message="OK")


@bp.post("/disputes/<int:dispute_id>/resolve")
@jwt_required()
def resolve_dispute(dispute_id: int):
    """
    Body JSON:
    {
      "decision": "split",
      "refund_to_renter": "30.00",
      "charge_to_owner": "70.00",
      "message": "...",
      "suggestion": {...}   # optional, recorded only
    }
    """
    admin_id = require_admin()

    data = resolve_schema.load(request.get_json() or {})
    dispute = dispute_service.resolve(
        dispute_id,
        admin_id,
        data["decision"],
        data["refund_to_renter"],
        data["charge_to_owner"],
        message=data.get("message"),
        suggestion=data.get("suggestion"),
    )
    return success_response(data=dispute_service.dispute_to_dict(dispute), message="Dispute resolved")
