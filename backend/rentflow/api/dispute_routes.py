from flask import Blueprint
from flask_jwt_extended import jwt_required

from rentflow.services import dispute_service
from rentflow.utils.auth import current_user_id, is_admin
from rentflow.utils.responses import success_response

bp = Blueprint("disputes", __name__)


@bp.get("/<int:dispute_id>")
@jwt_required()
def get_dispute(dispute_id: int):
    dispute = dispute_service.get_dispute(dispute_id, current_user_id(), admin=is_admin())
    return success_response(data=dispute_service.dispute_to_dict(dispute), message="OK")
