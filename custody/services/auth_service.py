import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from custody.models.types import TokenType
from custody.services import storage_service
from custody.services.ledger_gateway import get_gateway
from custody.services.notification_service import get_notifier
from custody.utils.exceptions import (
    AuthenticationError,
    DuplicateResourceError,
    ServiceError,
    ValidationError,
    WalletNotFound,
)

logger = logging.getLogger(__name__)


def _vault(vault):
    return vault or current_app.extensions["credential_vault"]


def _remove_user(user_id):
    # best effort: the caller is already failing with its own error
    try:
        storage_service.delete_user(user_id)
    except SQLAlchemyError:
        logger.exception("Could not remove incomplete registration for user %s", user_id)


def register_user(email, password, gateway=None, vault=None, notifier=None):
    if not email or not password:
        raise ValidationError("Email and password are required")
    vault = _vault(vault)
    gateway = gateway or get_gateway()
    notifier = notifier or get_notifier()

    existing = storage_service.get_user_by_email(email)
    if existing:
        if storage_service.get_wallet_by_user(existing.id):
            raise DuplicateResourceError("User with that email already exists", {"field": "email"})
        logger.warning("Removing incomplete registration for user %s", existing.id)
        _remove_user(existing.id)

    user = storage_service.create_user(email, vault.hash_password(password))
    user_id = user.id
    try:
        keypair = gateway.generate_keypair()
        wallet = storage_service.create_wallet(
            user_id,
            keypair.address,
            vault.encrypt(keypair.private_key),
            keypair.public_key,
        )
        del keypair
        for token in TokenType:
            storage_service.upsert_balance(wallet.id, token, 0)
    except Exception:
        logger.error("Registration of user %s failed; rolling back", user_id)
        _remove_user(user_id)
        raise

    logger.info("Registered user %s with wallet %s", user_id, wallet.address)
    notifier.emit_wallet_update(user_id)
    return user, wallet


def upgrade_wallet_key(wallet, vault=None):
    """Rewrite a key stored in the legacy 3-segment layout in the current
    format. Returns True when the row was rewritten."""
    vault = _vault(vault)
    if not wallet or not vault.is_legacy_format(wallet.private_key_encrypted):
        return False
    plaintext = vault.decrypt(wallet.private_key_encrypted)
    storage_service.update_wallet_key(wallet.id, vault.encrypt(plaintext))
    del plaintext
    logger.info("Re-encrypted legacy private key of wallet %s", wallet.id)
    return True


def authenticate_user(email, password, vault=None):
    vault = _vault(vault)
    user = storage_service.get_user_by_email(email)
    if not user or not vault.verify_password(password, user.password_hash):
        raise AuthenticationError()
    wallet = storage_service.get_wallet_by_user(user.id)
    try:
        upgrade_wallet_key(wallet, vault)
    except (ServiceError, SQLAlchemyError):
        logger.exception("Could not re-encrypt private key of wallet %s", wallet.id)
    return user, wallet


def change_password(user_id, current_password, new_password, vault=None):
    if not current_password or not new_password:
        raise ValidationError("Current and new password are required")
    vault = _vault(vault)
    user = storage_service.get_user(user_id)
    if not user or not vault.verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    storage_service.update_user_password(user.id, vault.hash_password(new_password))
    logger.info("Password changed for user %s", user.id)
    return user


def export_private_key(user_id, password, vault=None):
    """Return the hex signing key after re-checking the user's password."""
    vault = _vault(vault)
    user = storage_service.get_user(user_id)
    if not user or not vault.verify_password(password, user.password_hash):
        raise AuthenticationError()
    wallet = storage_service.get_wallet_by_user(user.id)
    if not wallet:
        raise WalletNotFound(user.id)
    logger.warning("Private key exported for wallet %s", wallet.id)
    return vault.decrypt(wallet.private_key_encrypted)
