from marshmallow import fields, validate

from rentflow.extensions.ma import ma


class ExtensionProposeSchema(ma.Schema):
    new_end_date = fields.Date(required=True)
    message = fields.String(required=False, load_default=None, validate=validate.Length(max=500))


class ExtensionResponseSchema(ma.Schema):
    approve = fields.Boolean(required=True)
