from custody.extensions import db
from datetime import datetime
from custody.models.user import gen_uuid

class Wallet(db.Model):
    __tablename__ = "wallets"

    id = db.Column(db.String(50), primary_key=True, default=lambda: gen_uuid("wal"))
    user_id = db.Column(db.String(50), db.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    address = db.Column(db.String(64), unique=True, nullable=False, index=True)
    # iv_hex:cipher_hex, never the plaintext key
    private_key_encrypted = db.Column(db.Text, nullable=False)
    public_key = db.Column(db.String(160), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User", backref=db.backref("wallet", uselist=False, cascade="all, delete-orphan"))
