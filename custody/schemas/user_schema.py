from marshmallow import EXCLUDE, fields, validate

from custody.extensions import ma


class UserPublicSchema(ma.Schema):
    id = fields.String()
    email = fields.String()
    created_at = fields.DateTime(data_key="createdAt")


class RegisterSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=6, max=128))


class LoginSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.String(required=True)
    password = fields.String(required=True)


class ChangePasswordSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    current_password = fields.String(required=True, data_key="currentPassword")
    new_password = fields.String(required=True, data_key="newPassword", validate=validate.Length(min=6, max=128))
