from marshmallow import EXCLUDE, Schema, fields, pre_load, validate


class RoleCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = fields.String(required=True, validate=[validate.Length(min=2, max=64), validate.Regexp(r"^[A-Z][A-Z0-9_]*$")])
    description = fields.String(load_default=None, validate=validate.Length(max=255))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get("name"), str):
            data = dict(data, name=data["name"].strip().upper())
        return data


class RolePermissionsSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    permissions = fields.List(
        fields.String(validate=[validate.Length(min=1, max=100), validate.Regexp(r"^[a-z]+:[a-z_]+$")]),
        required=True,
    )


class RoleOutSchema(Schema):
    id = fields.String()
    name = fields.String()
    description = fields.String(allow_none=True)
    permissions = fields.Method("get_permissions")

    def get_permissions(self, obj):
        return sorted(obj.permission_names)
