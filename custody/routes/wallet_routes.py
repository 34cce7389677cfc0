from flask import Blueprint, current_app, request

from custody.schemas.wallet_schema import PrivateKeyRequestSchema
from custody.services import storage_service
from custody.services.auth_service import export_private_key
from custody.services.balance_reconciler import detect_transactions, refresh_balances
from custody.utils.response_formatter import error_response, success_response

bp = Blueprint("wallet", __name__, url_prefix="/api/v1/wallet")


@bp.route("/<user_id>", methods=["GET"])
def get_wallet(user_id):
    wallet = storage_service.get_wallet_by_user(user_id)
    if not wallet:
        return error_response("WALLET_NOT_FOUND", "Wallet not found", status=404)
    return success_response({
        "address": wallet.address,
        "balances": storage_service.balances_as_dict(wallet.id),
    })


@bp.route("/<user_id>/update-balances", methods=["POST"])
def update_balances(user_id):
    balances = refresh_balances(user_id)
    return success_response(balances)


@bp.route("/<user_id>/detect-transactions", methods=["POST"])
def detect(user_id):
    summary = detect_transactions(user_id)
    current_app.logger.info("Reconciled wallet of user %s: %s", user_id, summary.to_dict())
    return success_response(summary.to_dict(), message="Transactions detected successfully")


@bp.route("/<user_id>/private-key", methods=["POST"])
def private_key(user_id):
    data = PrivateKeyRequestSchema().load(request.get_json() or {})
    key = export_private_key(user_id, data["password"])
    return success_response({"privateKey": key})
