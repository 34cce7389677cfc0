from flask import Blueprint, request

from custody.schemas.user_schema import ChangePasswordSchema
from custody.services.auth_service import change_password
from custody.utils.response_formatter import success_response

bp = Blueprint("users", __name__, url_prefix="/api/v1/user")


@bp.route("/<user_id>/change-password", methods=["POST"])
def update_password(user_id):
    data = ChangePasswordSchema().load(request.get_json() or {})
    change_password(user_id, data["current_password"], data["new_password"])
    return success_response(message="Password changed successfully")
