from marshmallow import EXCLUDE, fields

from custody.extensions import ma


class WalletPublicSchema(ma.Schema):
    address = fields.String()


class PrivateKeyRequestSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    password = fields.String(required=True)
