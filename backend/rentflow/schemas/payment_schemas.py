from marshmallow import fields, validates_schema, ValidationError, validate

from rentflow.extensions.ma import ma


class ProcessorCallbackSchema(ma.Schema):
    rental_id = fields.Integer(required=False, load_default=None)
    extension_id = fields.Integer(required=False, load_default=None)
    processor_txn_id = fields.String(required=True, validate=validate.Length(min=1, max=120))
    outcome = fields.String(required=True, validate=validate.OneOf(["succeeded", "failed"]))

    @validates_schema
    def one_target(self, data, **kwargs):
        if (data.get("rental_id") is None) == (data.get("extension_id") is None):
            raise ValidationError("Send exactly one of rental_id or extension_id.", field_name="rental_id")
