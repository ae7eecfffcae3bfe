from marshmallow import fields, validate

from rentflow.extensions.ma import ma
from rentflow.models.dispute import DISPUTE_DECISIONS, DISPUTE_REASONS


class DisputeCreateSchema(ma.Schema):
    reason = fields.String(required=True, validate=validate.OneOf(DISPUTE_REASONS))
    description = fields.String(required=True, validate=validate.Length(min=1, max=5000))
    evidence = fields.List(fields.String(), required=False, load_default=list)


class DisputeStatusSchema(ma.Schema):
    status = fields.String(required=True, validate=validate.OneOf(["open", "under_review", "closed"]))


class DisputeResolveSchema(ma.Schema):
    """
    Administrator decision. ``suggestion`` is whatever the advisory tool
    proposed; it is stored with the dispute and has no effect on the amounts.
    """

    decision = fields.String(required=True, validate=validate.OneOf(DISPUTE_DECISIONS))
    refund_to_renter = fields.Decimal(required=True, places=2, as_string=True, validate=validate.Range(min=0))
    charge_to_owner = fields.Decimal(required=True, places=2, as_string=True, validate=validate.Range(min=0))
    message = fields.String(required=False, load_default=None, validate=validate.Length(max=2000))
    suggestion = fields.Dict(required=False, load_default=None, allow_none=True)
