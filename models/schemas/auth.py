from marshmallow import Schema, fields, pre_load, validate, validates, validates_schema, ValidationError

from models.user import normalize_email

MIN_PASSWORD_LENGTH = 8


def _check_password_length(value):
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class RegisterSchema(Schema):
    email = fields.Email(required=True, validate=validate.Length(max=255))
    password = fields.String(required=True, load_only=True)
    confirm_password = fields.String(required=True, load_only=True)
    display_name = fields.String(required=True, validate=validate.Length(min=1, max=100))
    first_name = fields.String(allow_none=True, validate=validate.Length(max=50))
    last_name = fields.String(allow_none=True, validate=validate.Length(max=50))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if "email" in data:
                data["email"] = normalize_email(data["email"])
            if isinstance(data.get("display_name"), str):
                data["display_name"] = data["display_name"].strip()
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password_length(value)

    @validates_schema
    def passwords_match(self, data, **kwargs):
        if "password" in data and data.get("password") != data.get("confirm_password"):
            raise ValidationError("Passwords do not match", field_name="confirm_password")


class LoginSchema(Schema):
    # Plain string: a malformed address is just another failed login
    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=normalize_email(data["email"]))
        return data


class RefreshTokenSchema(Schema):
    refresh_token = fields.String(required=True, validate=validate.Length(min=1))


class ChangePasswordSchema(Schema):
    current_password = fields.String(required=True, load_only=True)
    new_password = fields.String(required=True, load_only=True)
    confirm_new_password = fields.String(required=True, load_only=True)

    @validates("new_password")
    def validate_new_password(self, value, **kwargs):
        _check_password_length(value)

    @validates_schema
    def passwords_match(self, data, **kwargs):
        if "new_password" in data and data.get("new_password") != data.get("confirm_new_password"):
            raise ValidationError("Passwords do not match", field_name="confirm_new_password")
