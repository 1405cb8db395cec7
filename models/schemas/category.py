from marshmallow import EXCLUDE, Schema, ValidationError, fields, pre_load, validate, validates_schema

from models.transaction import TransactionType


def _normalize(data):
    if isinstance(data, dict):
        data = dict(data)
        if isinstance(data.get("name"), str):
            data["name"] = data["name"].strip()
        if isinstance(data.get("type"), str):
            data["type"] = data["type"].strip().upper()
    return data


class CategoryCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = fields.String(required=True, validate=validate.Length(min=1, max=64))
    type = fields.Enum(TransactionType, required=True)
    description = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=255))

    @pre_load
    def normalize(self, data, **kwargs):
        return _normalize(data)


class CategoryUpdateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = fields.String(validate=validate.Length(min=1, max=64))
    type = fields.Enum(TransactionType)
    description = fields.String(allow_none=True, validate=validate.Length(max=255))

    @pre_load
    def normalize(self, data, **kwargs):
        return _normalize(data)

    @validates_schema
    def not_empty(self, data, **kwargs):
        if not data:
            raise ValidationError("At least one field must be provided")


class CategoryOutSchema(Schema):
    id = fields.String()
    name = fields.String()
    type = fields.Enum(TransactionType)
    description = fields.String(allow_none=True)
    is_deleted = fields.Boolean(data_key="isDeleted")
    created_at = fields.DateTime(data_key="createdAt")
    updated_at = fields.DateTime(data_key="updatedAt")
