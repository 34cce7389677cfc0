import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from custody.extensions import db
from custody.models.types import Direction, TokenType, TransactionStatus
from custody.services import storage_service
from custody.services.ledger_gateway import get_gateway
from custody.services.notification_service import get_notifier
from custody.utils.amounts import parse_amount, to_decimal
from custody.utils.exceptions import (
    InsufficientFunds,
    InvalidAddress,
    TransferNotRecorded,
    TransferRejected,
    ValidationError,
    WalletNotFound,
)

logger = logging.getLogger(__name__)


def get_vault():
    return current_app.extensions["credential_vault"]


def check_solvency(gateway, address, amount, token, fee, bound="upper"):
    """Raise ``InsufficientFunds`` unless ``address`` can pay ``amount`` plus
    ``fee`` at the given bound of its range. Fees are always paid in TRX."""
    fee_amount = fee.bound(bound)
    native = to_decimal(gateway.get_native_balance(address))

    if token.is_native:
        if native < amount:
            raise InsufficientFunds(InsufficientFunds.PRINCIPAL, token.value, amount + fee_amount, native)
        if native < amount + fee_amount:
            raise InsufficientFunds(InsufficientFunds.FEE, token.value, amount + fee_amount, native)
        return

    token_balance = to_decimal(gateway.get_token_balance(address))
    if token_balance < amount:
        raise InsufficientFunds(InsufficientFunds.PRINCIPAL, token.value, amount, token_balance)
    if native < fee_amount:
        raise InsufficientFunds(InsufficientFunds.FEE, TokenType.TRX.value, fee_amount, native)


def send_transfer(user_id, recipient_address, amount, token_type, gateway=None, vault=None, notifier=None):
    """Submit a transfer from the user's wallet.

    Returns ``(SubmitResult, Transaction)``. Nothing is persisted unless the
    ledger accepted the transaction; a rejected or failed submission is never
    retried here.
    """
    token = TokenType.parse(token_type)
    if token is None:
        raise ValidationError("tokenType must be TRX or USDT", {"field": "tokenType"})
    amount = parse_amount(amount)
    recipient_address = (recipient_address or "").strip()

    gateway = gateway or get_gateway()
    vault = vault or get_vault()
    notifier = notifier or get_notifier()

    if not gateway.validate_address(recipient_address):
        raise InvalidAddress(recipient_address)

    wallet = storage_service.get_wallet_by_user(user_id)
    if not wallet:
        raise WalletNotFound(user_id)
    if recipient_address == wallet.address:
        raise ValidationError("Cannot send to your own wallet address", {"field": "recipientAddress"})

    fee = gateway.estimate_fee(token)
    check_solvency(
        gateway, wallet.address, amount, token, fee,
        bound=current_app.config.get("FEE_SOLVENCY_BOUND", "upper"),
    )

    key = vault.decrypt_key_material(wallet.private_key_encrypted)
    try:
        if token.is_native:
            result = gateway.submit_native_transfer(key, recipient_address, amount)
        else:
            result = gateway.submit_token_transfer(key, recipient_address, amount)
    finally:
        vault.wipe(key)
        del key

    if not result.success:
        logger.warning(
            "Transfer of %s %s from wallet %s rejected: %s",
            amount, token.value, wallet.id, result.error,
        )
        raise TransferRejected(result.error)

    wallet_id, owner_id = wallet.id, wallet.user_id
    logger.info("Broadcast %s %s from wallet %s as %s", amount, token.value, wallet_id, result.hash)
    try:
        transaction, _ = storage_service.create_transaction(
            user_id=owner_id,
            wallet_id=wallet_id,
            tx_hash=result.hash,
            from_address=wallet.address,
            to_address=recipient_address,
            amount=amount,
            token_type=token,
            direction=Direction.SEND,
            status=TransactionStatus.PENDING,
            fee_estimate=str(fee),
        )
    except SQLAlchemyError:
        logger.exception("Broadcast transfer %s from wallet %s was not recorded", result.hash, wallet_id)
        db.session.rollback()
        raise TransferNotRecorded(result.hash)

    notifier.emit_wallet_update(owner_id)
    return result, transaction
