import logging

from custody.models.types import Direction, TokenType, TransactionStatus
from custody.services import storage_service
from custody.services.notification_service import get_notifier
from custody.utils.amounts import parse_amount
from custody.utils.exceptions import InvalidAddress, NotFoundError, ValidationError, WalletNotFound
from custody.utils.tron_address import is_valid_address

logger = logging.getLogger(__name__)


def record_received_transaction(user_id, tx_hash, from_address, amount, token_type, notifier=None):
    """Record an incoming transfer reported by a client.

    Idempotent on ``tx_hash``; returns ``(transaction, created)``.
    """
    token = TokenType.parse(token_type)
    if token is None:
        raise ValidationError("tokenType must be TRX or USDT", {"field": "tokenType"})
    if not tx_hash:
        raise ValidationError("txHash is required", {"field": "txHash"})
    amount = parse_amount(amount)
    if not is_valid_address(from_address):
        raise InvalidAddress(from_address)

    wallet = storage_service.get_wallet_by_user(user_id)
    if not wallet:
        raise WalletNotFound(user_id)

    transaction, created = storage_service.create_transaction(
        user_id=wallet.user_id,
        wallet_id=wallet.id,
        tx_hash=tx_hash,
        from_address=from_address,
        to_address=wallet.address,
        amount=amount,
        token_type=token,
        direction=Direction.RECEIVE,
        status=TransactionStatus.CONFIRMED,
    )
    if created:
        logger.info("Recorded incoming %s %s for wallet %s", amount, token.value, wallet.id)
    (notifier or get_notifier()).emit_wallet_update(wallet.user_id)
    return transaction, created


def set_transaction_status(tx_hash, status, notifier=None):
    if TransactionStatus.parse(status) is None:
        raise ValidationError("status must be pending, confirmed or failed", {"field": "status"})
    transaction = storage_service.update_transaction_status(tx_hash, status)
    if transaction is None:
        raise NotFoundError("Transaction not found", code="TRANSACTION_NOT_FOUND", details={"tx_hash": tx_hash})
    (notifier or get_notifier()).emit_wallet_update(transaction.user_id)
    return transaction
