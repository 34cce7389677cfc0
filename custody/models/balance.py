from custody.extensions import db
from datetime import datetime
from decimal import Decimal
from custody.models.wallet import Wallet


class Balance(db.Model):
    __tablename__ = "balances"

    id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.String(50), db.ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True)
    token_type = db.Column(db.String(10), nullable=False)
    balance = db.Column(db.Numeric(20, 6), nullable=False, default=Decimal("0"))
    last_updated = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("wallet_id", "token_type", name="balances_wallet_token_unique"),
    )

    wallet = db.relationship("Wallet", backref=db.backref("balances", cascade="all, delete-orphan"))
