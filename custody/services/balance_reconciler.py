"""Pull ledger truth into the local cache.

``refresh_balances`` re-reads both balances for a wallet; a read that fails
leaves the cached row untouched. ``detect_transactions`` walks the recent
transfer history of the wallet address and records what is missing, moving
known rows forward without ever regressing them.
"""
import logging
from dataclasses import asdict, dataclass

from flask import current_app

from custody.models.types import Direction, TokenType, TransactionStatus
from custody.services import storage_service
from custody.services.ledger_gateway import SkippedTransfer, get_gateway
from custody.services.notification_service import get_notifier
from custody.utils.amounts import format_amount
from custody.utils.exceptions import GatewayError, ReconciliationError, WalletNotFound

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_THRESHOLD = 19


@dataclass
class ReconciliationSummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self):
        return asdict(self)


def _resolve_wallet(user_id):
    wallet = storage_service.get_wallet_by_user(user_id)
    if not wallet:
        raise WalletNotFound(user_id)
    return wallet


def refresh_balances(user_id, gateway=None, notifier=None):
    gateway = gateway or get_gateway()
    notifier = notifier or get_notifier()
    wallet = _resolve_wallet(user_id)

    fetchers = {
        TokenType.TRX: gateway.fetch_native_balance,
        TokenType.USDT: gateway.fetch_token_balance,
    }
    balances = storage_service.balances_as_dict(wallet.id)
    for token, fetch in fetchers.items():
        try:
            amount = fetch(wallet.address)
        except GatewayError as e:
            logger.warning("Keeping cached %s balance for wallet %s: %s", token.value, wallet.id, e.message)
            continue
        storage_service.upsert_balance(wallet.id, token, amount)
        balances[token.value] = format_amount(amount)

    notifier.emit_wallet_update(wallet.user_id)
    return balances


def status_for(record, confirmations, threshold):
    if not record.succeeded:
        return TransactionStatus.FAILED
    if confirmations >= threshold:
        return TransactionStatus.CONFIRMED
    return TransactionStatus.PENDING


def _direction_for(record, address):
    if record.from_address == address:
        return Direction.SEND
    if record.to_address == address:
        return Direction.RECEIVE
    return None


def _apply(wallet, record, head, threshold, summary):
    if isinstance(record, SkippedTransfer):
        logger.debug("Skipping ledger record %s: %s", record.tx_hash, record.reason)
        summary.skipped += 1
        return

    direction = _direction_for(record, wallet.address)
    if direction is None:
        summary.skipped += 1
        return

    confirmations = record.confirmations(head)
    status = status_for(record, confirmations, threshold)

    existing = storage_service.get_transaction_by_hash(record.tx_hash)
    if existing is None:
        _, created = storage_service.create_transaction(
            user_id=wallet.user_id,
            wallet_id=wallet.id,
            tx_hash=record.tx_hash,
            from_address=record.from_address,
            to_address=record.to_address,
            amount=record.amount,
            token_type=record.token_type,
            direction=direction,
            status=status,
            confirmations=confirmations,
            block_number=record.block_number,
            gas_used=getattr(record, "fee", None),
        )
        if created:
            summary.created += 1
        return

    before = (existing.status, existing.confirmations)
    storage_service.update_transaction_status(record.tx_hash, status, confirmations)
    if (existing.status, existing.confirmations) != before:
        summary.updated += 1


def detect_transactions(user_id, gateway=None, notifier=None, threshold=None):
    gateway = gateway or get_gateway()
    notifier = notifier or get_notifier()
    if threshold is None:
        threshold = current_app.config.get("CONFIRMATION_THRESHOLD", DEFAULT_CONFIRMATION_THRESHOLD)
    wallet = _resolve_wallet(user_id)

    summary = ReconciliationSummary()
    try:
        head = gateway.get_chain_head()
        for token in TokenType:
            for record in gateway.list_recent_transfers(wallet.address, token):
                _apply(wallet, record, head, threshold, summary)
    except GatewayError as e:
        # rows written before the failure stay committed
        logger.error("Transaction detection for wallet %s aborted: %s", wallet.id, e.message)
        raise ReconciliationError(
            f"Transaction detection aborted: {e.message}", summary.to_dict()
        )

    logger.info(
        "Detected transactions for wallet %s: %d new, %d updated, %d skipped",
        wallet.id, summary.created, summary.updated, summary.skipped,
    )
    notifier.emit_wallet_update(wallet.user_id)
    return summary
