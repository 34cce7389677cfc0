from flask import Blueprint, current_app, request

from custody.schemas.transaction_schema import (
    ReceiveTransactionSchema,
    SendTransactionSchema,
    TransactionSchema,
    TransactionStatusSchema,
)
from custody.services import storage_service
from custody.services.ledger_gateway import get_gateway
from custody.services.transaction_service import record_received_transaction, set_transaction_status
from custody.services.transfer_service import send_transfer
from custody.models.types import TokenType
from custody.utils.response_formatter import error_response, success_response

bp = Blueprint("transactions", __name__, url_prefix="/api/v1")

transaction_schema = TransactionSchema()
transactions_schema = TransactionSchema(many=True)


@bp.route("/transactions/send", methods=["POST"])
def send():
    data = SendTransactionSchema().load(request.get_json() or {})
    result, transaction = send_transfer(
        data["user_id"],
        data["recipient_address"],
        data["amount"],
        data["token_type"],
    )
    current_app.logger.info("Transfer %s submitted for user %s", result.hash, data["user_id"])
    return success_response({
        "hash": result.hash,
        "transaction": transaction_schema.dump(transaction),
    })


@bp.route("/transactions/<user_id>", methods=["GET"])
def list_transactions(user_id):
    items, meta = storage_service.get_transactions_by_user(
        user_id,
        page=request.args.get("page"),
        limit=request.args.get("limit"),
    )
    return success_response({
        "transactions": transactions_schema.dump(items),
        "pagination": meta,
    })


@bp.route("/transactions/hash/<tx_hash>", methods=["GET"])
def get_by_hash(tx_hash):
    transaction = storage_service.get_transaction_by_hash(tx_hash)
    if not transaction:
        return error_response("TRANSACTION_NOT_FOUND", "Transaction not found", status=404)
    return success_response({"transaction": transaction_schema.dump(transaction)})


@bp.route("/transactions/receive", methods=["POST"])
def receive():
    data = ReceiveTransactionSchema().load(request.get_json() or {})
    transaction, created = record_received_transaction(
        data["user_id"],
        data["tx_hash"],
        data["from_address"],
        data["amount"],
        data["token_type"],
    )
    return success_response({
        "transaction": transaction_schema.dump(transaction),
        "created": created,
    }, status=201 if created else 200)


@bp.route("/transactions/<tx_hash>/status", methods=["PUT"])
def update_status(tx_hash):
    data = TransactionStatusSchema().load(request.get_json() or {})
    transaction = set_transaction_status(tx_hash, data["status"])
    return success_response({"txHash": transaction.tx_hash, "status": transaction.status})


@bp.route("/gas-fee/<token_type>", methods=["GET"])
def gas_fee(token_type):
    token = TokenType.parse(token_type)
    if token is None:
        return error_response("VALIDATION_ERROR", "tokenType must be TRX or USDT", status=400)
    fee = get_gateway().estimate_fee(token)
    return success_response({"fee": str(fee), "tokenType": token.value})
