from marshmallow import Schema, fields


class ActivityOutSchema(Schema):
    id = fields.String()
    action = fields.String()
    details = fields.Raw(allow_none=True)
    ip_address = fields.String(data_key="ipAddress", allow_none=True)
    timestamp = fields.DateTime()
