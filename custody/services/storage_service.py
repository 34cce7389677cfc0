"""Persistence of users, wallets, balances and transactions.

Lookups return ``None`` (or an empty list) when a row is absent. Every write
commits on its own. Uniqueness lives in the database: a concurrent insert
that loses the race on ``(wallet_id, token_type)`` or ``tx_hash`` falls back
to the row that won.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from custody.extensions import db
from custody.models.balance import Balance
from custody.models.transaction import Transaction
from custody.models.types import TokenType, TransactionStatus
from custody.models.user import User
from custody.models.wallet import Wallet
from custody.utils.amounts import format_amount, to_decimal
from custody.utils.exceptions import DuplicateResourceError, ValidationError
from custody.utils.pagination import paginate_query

logger = logging.getLogger(__name__)


def _commit():
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def _token_value(token_type):
    token = TokenType.parse(token_type)
    if token is None:
        raise ValidationError("Unsupported token type", {"token_type": str(token_type)})
    return token.value


# ---- users ----

def get_user(user_id):
    if not user_id:
        return None
    return db.session.get(User, str(user_id))


def get_user_by_email(email):
    if not email:
        return None
    return User.query.filter_by(email=email.strip().lower()).first()


def create_user(email, password_hash):
    user = User(email=email.strip().lower(), password_hash=password_hash)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateResourceError("User already exists", {"field": "email"})
    return user


def update_user_password(user_id, password_hash):
    user = get_user(user_id)
    if not user:
        return None
    user.password_hash = password_hash
    _commit()
    return user


def delete_user(user_id):
    user = get_user(user_id)
    if not user:
        return False
    db.session.delete(user)
    _commit()
    return True


# ---- wallets ----

def get_wallet_by_user(user_id):
    if not user_id:
        return None
    return Wallet.query.filter_by(user_id=str(user_id)).first()


def get_wallet_by_address(address):
    if not address:
        return None
    return Wallet.query.filter_by(address=address).first()


def create_wallet(user_id, address, private_key_encrypted, public_key):
    wallet = Wallet(
        user_id=user_id,
        address=address,
        private_key_encrypted=private_key_encrypted,
        public_key=public_key,
    )
    db.session.add(wallet)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateResourceError("Wallet already exists", {"user_id": user_id})
    return wallet


def update_wallet_key(wallet_id, private_key_encrypted):
    wallet = db.session.get(Wallet, wallet_id)
    if not wallet:
        return None
    wallet.private_key_encrypted = private_key_encrypted
    _commit()
    return wallet


# ---- balances ----

def get_balances_by_wallet(wallet_id):
    return Balance.query.filter_by(wallet_id=wallet_id).order_by(Balance.token_type).all()


def get_balance_by_wallet_and_token(wallet_id, token_type):
    return Balance.query.filter_by(wallet_id=wallet_id, token_type=_token_value(token_type)).first()


def balances_as_dict(wallet_id):
    balances = {token.value: format_amount(0) for token in TokenType}
    for row in get_balances_by_wallet(wallet_id):
        balances[row.token_type] = format_amount(row.balance)
    return balances


def upsert_balance(wallet_id, token_type, amount):
    token = _token_value(token_type)
    amount = to_decimal(amount)
    balance = get_balance_by_wallet_and_token(wallet_id, token)
    if balance is None:
        balance = Balance(wallet_id=wallet_id, token_type=token, balance=amount, last_updated=datetime.utcnow())
        db.session.add(balance)
        try:
            db.session.commit()
            return balance
        except IntegrityError:
            # another request inserted the same (wallet, token) first
            db.session.rollback()
            balance = get_balance_by_wallet_and_token(wallet_id, token)
        except SQLAlchemyError:
            db.session.rollback()
            raise

    balance.balance = amount
    balance.last_updated = datetime.utcnow()
    _commit()
    return balance


# ---- transactions ----

def get_transactions_by_user(user_id, page=1, limit=50):
    query = (
        Transaction.query
        .filter_by(user_id=str(user_id))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
    )
    return paginate_query(query, page, limit)


def get_transaction_by_hash(tx_hash):
    if not tx_hash:
        return None
    return Transaction.query.filter_by(tx_hash=tx_hash).first()


def create_transaction(**fields):
    """Insert a transaction row; returns ``(transaction, created)``.

    A hash that is already stored is not an error: the stored row comes back
    with ``created=False``.
    """
    existing = get_transaction_by_hash(fields.get("tx_hash"))
    if existing:
        return existing, False

    fields["token_type"] = _token_value(fields.get("token_type"))
    fields["amount"] = to_decimal(fields.get("amount"))
    fields.setdefault("status", TransactionStatus.PENDING.value)
    fields["status"] = getattr(fields["status"], "value", fields["status"])
    fields["direction"] = getattr(fields.get("direction"), "value", fields.get("direction"))
    if fields["status"] == TransactionStatus.CONFIRMED.value and not fields.get("confirmed_at"):
        fields["confirmed_at"] = datetime.utcnow()

    transaction = Transaction(**fields)
    db.session.add(transaction)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = get_transaction_by_hash(fields.get("tx_hash"))
        if existing is None:
            raise
        logger.info("Transaction %s was recorded concurrently", fields.get("tx_hash"))
        return existing, False
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return transaction, True


def update_transaction_status(tx_hash, status, confirmations=None, confirmed_at=None):
    """Move a transaction forward. Terminal statuses and confirmation counts
    never go backwards; returns the row, or ``None`` for an unknown hash."""
    new_status = TransactionStatus.parse(getattr(status, "value", status))
    if new_status is None:
        raise ValidationError("Unsupported transaction status", {"status": str(status)})

    transaction = get_transaction_by_hash(tx_hash)
    if not transaction:
        return None

    current = TransactionStatus(transaction.status)
    changed = False
    if new_status != current:
        if current.is_terminal:
            logger.info("Keeping %s for %s; %s is terminal", current.value, tx_hash, current.value)
        else:
            transaction.status = new_status.value
            changed = True
            if new_status is TransactionStatus.CONFIRMED:
                transaction.confirmed_at = confirmed_at or datetime.utcnow()

    if confirmations is not None and int(confirmations) > (transaction.confirmations or 0):
        transaction.confirmations = int(confirmations)
        changed = True

    if changed:
        _commit()
    return transaction
