from marshmallow import fields, validates_schema, ValidationError, validate

from rentflow.extensions.ma import ma


class RentalCreateSchema(ma.Schema):
    """
    A priced rental request.
    total_amount comes from the caller's pricing; it is not computed here.
    """

    item_id = fields.Integer(required=True)
    start_date = fields.Date(required=True)  # ISO 8601, inclusive
    end_date = fields.Date(required=True)
    total_amount = fields.Decimal(required=True, places=2, as_string=True)

    @validates_schema
    def validate_dates(self, data, **kwargs):
        start = data.get("start_date")
        end = data.get("end_date")
        if start and end and end < start:
            raise ValidationError(
                "end_date must be on or after start_date",
                field_name="end_date",
            )


class InquirySchema(ma.Schema):
    item_id = fields.Integer(required=True)
    start_date = fields.Date(required=True)
    end_date = fields.Date(required=True)
    message = fields.String(required=False, load_default=None, validate=validate.Length(max=300))


class SubmitRequestSchema(ma.Schema):
    total_amount = fields.Decimal(required=True, places=2, as_string=True)
    start_date = fields.Date(required=False, load_default=None)
    end_date = fields.Date(required=False, load_default=None)


class ReasonSchema(ma.Schema):
    reason = fields.String(required=False, load_default=None, validate=validate.Length(max=300))


class DamageSchema(ma.Schema):
    severity = fields.String(required=False, load_default=None)
    description = fields.String(required=False, load_default="")
    photo = fields.String(required=False, load_default=None, allow_none=True)


class ConditionReportSchema(ma.Schema):
    # Completeness (photos, signature) is judged by the gate so it can name what is missing.
    report_type = fields.String(required=True, validate=validate.OneOf(["pickup", "return"]))
    photos = fields.List(fields.String(), required=False, load_default=list)
    signature = fields.String(required=False, load_default=None, allow_none=True)
    damages = fields.List(fields.Dict(), required=False, load_default=list)
    notes = fields.String(required=False, load_default=None, allow_none=True, validate=validate.Length(max=2000))
