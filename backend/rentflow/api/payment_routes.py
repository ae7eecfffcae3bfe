from flask import Blueprint, request

from rentflow.schemas.payment_schemas import ProcessorCallbackSchema
from rentflow.services import payment_callback_service
from rentflow.utils.responses import success_response

bp = Blueprint("payments", __name__)

callback_schema = ProcessorCallbackSchema()


@bp.get("/ping")
def ping_payments():
    return success_response(message="payments ok")


@bp.post("/callback")
def processor_callback():
    """
    Called by the payment processor, not by users.
    Body JSON: {"rental_id": 1, "processor_txn_id": "txn_123", "outcome": "succeeded"}
    or the same with "extension_id" instead of "rental_id".
    """
    payment_callback_service.verify_signature(
        request.get_data(cache=True),
        request.headers.get("X-Processor-Signature"),
    )
    data = callback_schema.load(request.get_json() or {})
    result = payment_callback_service.handle_callback(data)
    return success_response(data=result, message="duplicate" if result["duplicate"] else "applied")
