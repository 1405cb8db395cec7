import re

from marshmallow import EXCLUDE, Schema, ValidationError, fields, pre_load, validate

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
PASSWORD_RULE_MSG = "Password must contain at least one uppercase letter, one lowercase letter, and one number"


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def _strip(v):
    return v.strip() if isinstance(v, str) else v


def check_password_strength(value: str) -> None:
    if len(value) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if len(value) > 100:
        raise ValidationError("Password cannot exceed 100 characters")
    if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
        raise ValidationError(PASSWORD_RULE_MSG)


def check_username(value: str) -> None:
    if len(value) < 3:
        raise ValidationError("Username must be at least 3 characters long")
    if len(value) > 30:
        raise ValidationError("Username cannot exceed 30 characters")
    if not USERNAME_RE.match(value):
        raise ValidationError("Username can only contain letters, numbers, underscores and hyphens")


class _Input(Schema):
    class Meta:
        unknown = EXCLUDE


class RegisterSchema(_Input):
    username = fields.String(required=True, validate=check_username)
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True, validate=check_password_strength)
    first_name = fields.String(data_key="firstName", load_default=None, validate=validate.Length(max=50))
    last_name = fields.String(data_key="lastName", load_default=None, validate=validate.Length(max=50))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if "email" in data:
                data["email"] = _norm_email(data["email"])
            for key in ("username", "firstName", "lastName"):
                if key in data:
                    data[key] = _strip(data[key])
        return data


class LoginSchema(_Input):
    # email or username
    email = fields.String(required=True, validate=validate.Length(min=1, max=255))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1, max=100))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_strip(data["email"]))
        return data


class PasswordResetRequestSchema(_Input):
    email = fields.Email(required=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data


class PasswordResetSchema(_Input):
    user_id = fields.String(data_key="userId", required=True, validate=validate.Length(min=1, max=36))
    token = fields.String(required=True, validate=validate.Length(min=1, max=256))
    new_password = fields.String(data_key="newPassword", required=True, load_only=True, validate=check_password_strength)


class EmailVerificationSchema(_Input):
    user_id = fields.String(data_key="userId", required=True, validate=validate.Length(min=1, max=36))
    token = fields.String(required=True, validate=validate.Length(min=1, max=256))


class ChangePasswordSchema(_Input):
    current_password = fields.String(data_key="currentPassword", required=True, load_only=True)
    new_password = fields.String(data_key="newPassword", required=True, load_only=True, validate=check_password_strength)


class ProfileUpdateSchema(_Input):
    username = fields.String(validate=check_username)
    email = fields.Email()
    first_name = fields.String(data_key="firstName", allow_none=True, validate=validate.Length(max=50))
    last_name = fields.String(data_key="lastName", allow_none=True, validate=validate.Length(max=50))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if "email" in data:
                data["email"] = _norm_email(data["email"])
            for key in ("username", "firstName", "lastName"):
                if key in data:
                    data[key] = _strip(data[key])
        return data


class AccountSettingsSchema(_Input):
    two_factor_enabled = fields.Boolean(data_key="twoFactorEnabled")


class UserStatusSchema(_Input):
    is_active = fields.Boolean(data_key="isActive", required=True)


class UserRolesSchema(_Input):
    roles = fields.List(fields.String(validate=validate.Length(min=1, max=64)), required=True, validate=validate.Length(min=1))


class UserOutSchema(Schema):
    id = fields.String()
    username = fields.String()
    email = fields.String()
    first_name = fields.String(data_key="firstName", allow_none=True)
    last_name = fields.String(data_key="lastName", allow_none=True)
    is_active = fields.Boolean(data_key="isActive")
    email_verified = fields.Boolean(data_key="emailVerified")
    two_factor_enabled = fields.Boolean(data_key="twoFactorEnabled")
    roles = fields.Method("get_roles")
    created_at = fields.DateTime(data_key="createdAt")
    updated_at = fields.DateTime(data_key="updatedAt")

    def get_roles(self, obj):
        return sorted(obj.role_names)


class AdminUserOutSchema(UserOutSchema):
    is_deleted = fields.Boolean(data_key="isDeleted")
