from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from rentflow.schemas.extension_schemas import ExtensionResponseSchema
from rentflow.services import extension_service
from rentflow.utils.auth import current_user_id
from rentflow.utils.responses import success_response

bp = Blueprint("extensions", __name__)

response_schema = ExtensionResponseSchema()


@bp.post("/<int:extension_id>/respond")
@jwt_required()
def respond(extension_id: int):
    """Body JSON: {"approve": true}"""
    data = response_schema.load(request.get_json() or {})
    ext = extension_service.respond(extension_id, current_user_id(), data["approve"])
    return success_response(
        data=extension_service.extension_to_dict(ext),
        message="Extension approved" if ext.status == "approved" else "Extension declined",
    )
