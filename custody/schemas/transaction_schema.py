from marshmallow import EXCLUDE, fields, validate

from custody.extensions import ma
from custody.models.types import TokenType, TransactionStatus

TOKEN_CHOICES = [token.value for token in TokenType]
STATUS_CHOICES = [status.value for status in TransactionStatus]


class TransactionSchema(ma.Schema):
    id = fields.Integer()
    user_id = fields.String(data_key="userId")
    tx_hash = fields.String(data_key="txHash")
    from_address = fields.String(data_key="fromAddress")
    to_address = fields.String(data_key="toAddress")
    amount = fields.Decimal(places=6, as_string=True)
    token_type = fields.String(data_key="tokenType")
    direction = fields.String()
    status = fields.String()
    confirmations = fields.Integer()
    block_number = fields.Integer(data_key="blockNumber", allow_none=True)
    fee_estimate = fields.String(data_key="feeEstimate", allow_none=True)
    gas_used = fields.Decimal(places=6, as_string=True, data_key="gasUsed", allow_none=True)
    created_at = fields.DateTime(data_key="createdAt")
    confirmed_at = fields.DateTime(data_key="confirmedAt", allow_none=True)


class SendTransactionSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    user_id = fields.String(required=True, data_key="userId")
    recipient_address = fields.String(required=True, data_key="recipientAddress")
    amount = fields.String(required=True)
    token_type = fields.String(required=True, data_key="tokenType", validate=validate.OneOf(TOKEN_CHOICES))


class ReceiveTransactionSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    user_id = fields.String(required=True, data_key="userId")
    tx_hash = fields.String(required=True, data_key="txHash", validate=validate.Length(min=1, max=100))
    from_address = fields.String(required=True, data_key="fromAddress")
    amount = fields.String(required=True)
    token_type = fields.String(required=True, data_key="tokenType", validate=validate.OneOf(TOKEN_CHOICES))


class TransactionStatusSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    status = fields.String(required=True, validate=validate.OneOf(STATUS_CHOICES))
