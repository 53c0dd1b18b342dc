import re

from marshmallow import EXCLUDE, Schema, fields, pre_load, validates, validates_schema, ValidationError, validate

USERNAME_RE = re.compile(r"^[a-z0-9_.]{1,64}$")


def _norm(v):
    return v.strip().lower() if isinstance(v, str) else v


def _check_password(value):
    if len(value) < 8:
        raise ValidationError("Password must be at least 8 characters long.")


class UserRegisterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    full_name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True)
    username = fields.String(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("email", "username"):
            if key in data:
                data[key] = _norm(data[key])
        if isinstance(data.get("full_name"), str):
            data["full_name"] = data["full_name"].strip()
        return data

    @validates("username")
    def validate_username(self, value, **kwargs):
        if not USERNAME_RE.match(value):
            raise ValidationError("Username must be 1-64 characters: letters, digits, '_' or '.'.")

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class UserLoginSchema(Schema):
    """Accepts username, email or a generic identifier; any one of them is enough."""
    class Meta:
        unknown = EXCLUDE

    username = fields.String()
    email = fields.String()
    identifier = fields.String()
    password = fields.String(required=True, validate=validate.Length(min=1))

    @validates_schema
    def require_identifier(self, data, **kwargs):
        if not any((data.get(k) or "").strip() for k in ("identifier", "username", "email")):
            raise ValidationError("username or email is required", field_name="identifier")


class RefreshTokenSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    refresh_token = fields.String()
    refreshToken = fields.String()


class ChangePasswordSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    old_password = fields.String(required=True, load_only=True)
    new_password = fields.String(required=True, load_only=True)

    @validates("new_password")
    def validate_new_password(self, value, **kwargs):
        _check_password(value)


class AccountUpdateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    full_name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "email" in data:
            data["email"] = _norm(data["email"])
        return data


class UserOutSchema(Schema):
    id = fields.String()
    username = fields.String()
    email = fields.String()
    full_name = fields.String()
    avatar = fields.String()
    cover_image = fields.String(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()


class UserSummarySchema(Schema):
    id = fields.String()
    username = fields.String()
    full_name = fields.String()
    avatar = fields.String()


class ChannelProfileSchema(Schema):
    id = fields.String()
    username = fields.String()
    full_name = fields.String()
    email = fields.String()
    avatar = fields.String()
    cover_image = fields.String(allow_none=True)
    subscribers_count = fields.Integer()
    channels_subscribed_to_count = fields.Integer()
    is_subscribed = fields.Boolean()
