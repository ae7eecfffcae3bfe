from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from rentflow.services import notification_service
from rentflow.utils.auth import current_user_id
from rentflow.utils.responses import success_response

bp = Blueprint("notifications", __name__)


@bp.get("/ping")
def ping_notifications():
    return success_response(message="notifications ok")


@bp.get("")
@jwt_required()
def list_notifications():
    user_id = current_user_id()

    data = notification_service.list_notifications(user_id, limit=request.args.get("limit", 50, type=int))

    if current_app.config.get("NOTIFICATIONS_DEBUG"):
        current_app.logger.info(
            "[notifications] GET /api/notifications user=%s -> items=%s unread=%s",
            user_id,
            len(data.get("items") or []),
            data.get("unread_count"),
        )
    return success_response(data=data, message="OK")


@bp.post("/<int:notification_id>/read")
@jwt_required()
def mark_read(notification_id: int):
    notification_service.mark_read(notification_id, current_user_id())
    return success_response(message="OK")
