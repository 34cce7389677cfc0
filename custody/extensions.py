from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow
from flask_cors import CORS

from custody.services.credential_vault import CredentialVault
from custody.services.ledger_gateway import TronGateway
from custody.services.notification_service import WalletNotifier

db = SQLAlchemy()
ma = Marshmallow()
cors = CORS()
vault = CredentialVault()
ledger = TronGateway()
notifier = WalletNotifier()
