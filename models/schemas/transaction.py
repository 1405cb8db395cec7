from decimal import Decimal

from marshmallow import EXCLUDE, Schema, ValidationError, fields, pre_load, validate, validates_schema

from models.transaction import TransactionType

MAX_AMOUNT = Decimal("9999999999.99")


def _amount(**kwargs):
    return fields.Decimal(places=2, validate=validate.Range(min=Decimal("0.01"), max=MAX_AMOUNT), **kwargs)


def _normalize(data):
    if isinstance(data, dict):
        data = dict(data)
        if isinstance(data.get("type"), str):
            data["type"] = data["type"].strip().upper()
        if isinstance(data.get("description"), str):
            data["description"] = data["description"].strip()
    return data


class TransactionCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    type = fields.Enum(TransactionType, required=True)
    amount = _amount(required=True)
    description = fields.String(required=True, validate=validate.Length(min=1, max=255))
    transaction_date = fields.Date(data_key="date", load_default=None)
    category_id = fields.String(data_key="categoryId", load_default=None, allow_none=True, validate=validate.Length(max=36))
    notes = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=1000))

    @pre_load
    def normalize(self, data, **kwargs):
        return _normalize(data)


class TransactionUpdateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    type = fields.Enum(TransactionType)
    amount = _amount()
    description = fields.String(validate=validate.Length(min=1, max=255))
    transaction_date = fields.Date(data_key="date")
    category_id = fields.String(data_key="categoryId", allow_none=True, validate=validate.Length(max=36))
    notes = fields.String(allow_none=True, validate=validate.Length(max=1000))

    @pre_load
    def normalize(self, data, **kwargs):
        return _normalize(data)

    @validates_schema
    def not_empty(self, data, **kwargs):
        if not data:
            raise ValidationError("At least one field must be provided")


class TransactionOutSchema(Schema):
    id = fields.String()
    type = fields.Enum(TransactionType)
    amount = fields.Decimal(places=2, as_string=True)
    description = fields.String()
    notes = fields.String(allow_none=True)
    transaction_date = fields.Date(data_key="date")
    category_id = fields.String(data_key="categoryId", allow_none=True)
    category_name = fields.Function(lambda tx: tx.category.name if tx.category else None, data_key="categoryName")
    is_deleted = fields.Boolean(data_key="isDeleted")
    created_at = fields.DateTime(data_key="createdAt")
    updated_at = fields.DateTime(data_key="updatedAt")
