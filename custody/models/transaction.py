from custody.extensions import db
from datetime import datetime
from custody.models.wallet import Wallet
from custody.models.types import TransactionStatus


class Transaction(db.Model):
    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(50), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    wallet_id = db.Column(db.String(50), db.ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True)

    tx_hash = db.Column(db.String(100), unique=True, nullable=False, index=True)
    from_address = db.Column(db.String(64), nullable=False)
    to_address = db.Column(db.String(64), nullable=False)
    amount = db.Column(db.Numeric(20, 6), nullable=False)
    token_type = db.Column(db.String(10), nullable=False)
    direction = db.Column(db.String(10), nullable=False)

    status = db.Column(db.String(20), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    confirmations = db.Column(db.Integer, nullable=False, default=0)
    block_number = db.Column(db.BigInteger)

    # "1.1" or a range such as "13.8~30"
    fee_estimate = db.Column(db.String(32))
    gas_used = db.Column(db.Numeric(20, 6))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    confirmed_at = db.Column(db.DateTime)

    wallet = db.relationship("Wallet", backref=db.backref("transactions", cascade="all, delete-orphan"))
