from flask import Blueprint, current_app, request

from custody.schemas.user_schema import LoginSchema, RegisterSchema, UserPublicSchema
from custody.schemas.wallet_schema import WalletPublicSchema
from custody.services.auth_service import authenticate_user, register_user
from custody.utils.response_formatter import success_response

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")

user_schema = UserPublicSchema()
wallet_schema = WalletPublicSchema()


@bp.route("/register", methods=["POST"])
def register():
    data = RegisterSchema().load(request.get_json() or {})
    user, wallet = register_user(data["email"], data["password"])
    current_app.logger.info("New account %s", user.id)
    return success_response({
        "user": user_schema.dump(user),
        "wallet": wallet_schema.dump(wallet),
    }, status=201)


@bp.route("/login", methods=["POST"])
def login():
    data = LoginSchema().load(request.get_json() or {})
    user, wallet = authenticate_user(data["email"], data["password"])
    return success_response({
        "user": user_schema.dump(user),
        "wallet": wallet_schema.dump(wallet) if wallet else None,
    })
