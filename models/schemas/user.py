from marshmallow import Schema, fields, pre_load, validate, validates, ValidationError

from models.user import normalize_email


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    email = fields.String(allow_none=False)
    display_name = fields.String()
    first_name = fields.String(allow_none=True)
    last_name = fields.String(allow_none=True)
    roles = fields.List(fields.String())
    is_active = fields.Boolean()
    email_verified = fields.Boolean()
    email_verified_at = fields.DateTime(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()


class UserProfileSchema(Schema):
    """Body of PUT /users/<id>; PATCH loads it with partial=True."""
    display_name = fields.String(required=True, validate=validate.Length(min=1, max=100))
    first_name = fields.String(allow_none=True, validate=validate.Length(max=50))
    last_name = fields.String(allow_none=True, validate=validate.Length(max=50))

    @pre_load
    def strip_names(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for key in ("display_name", "first_name", "last_name"):
            if isinstance(cleaned.get(key), str):
                cleaned[key] = cleaned[key].strip()
        # blank optional names are stored as null
        for key in ("first_name", "last_name"):
            if cleaned.get(key) == "":
                cleaned[key] = None
        return cleaned


class ChangeEmailSchema(Schema):
    email = fields.Email(required=True, validate=validate.Length(max=255))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=normalize_email(data["email"]))
        return data


class RolesSchema(Schema):
    roles = fields.List(fields.String(validate=validate.Length(min=1)), required=True)

    @validates("roles")
    def validate_roles(self, value, **kwargs):
        if not value:
            raise ValidationError("roles must be a non-empty list")


class CreateUserSchema(Schema):
    """Body of admin POST /users."""
    email = fields.Email(required=True, validate=validate.Length(max=255))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=8))
    display_name = fields.String(required=True, validate=validate.Length(min=1, max=100))
    first_name = fields.String(allow_none=True, validate=validate.Length(max=50))
    last_name = fields.String(allow_none=True, validate=validate.Length(max=50))
    roles = fields.List(fields.String(validate=validate.Length(min=1)), load_default=lambda: ["user"])

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if "email" in data:
                data["email"] = normalize_email(data["email"])
            for key in ("display_name", "first_name", "last_name"):
                if isinstance(data.get(key), str):
                    data[key] = data[key].strip()
        return data
