"""
Shared pytest fixtures: an app on in-memory SQLite with a scripted ledger.
"""

from decimal import Decimal

import pytest

from custody.extensions import db as _db
from custody.main import create_app
from custody.models.types import TokenType
from custody.services.ledger_gateway import ChainHead, FeeEstimate, SubmitResult, TronGateway
from custody.utils.amounts import format_amount
from custody.utils.exceptions import GatewayError
from custody.utils.tron_address import is_valid_address


class FakeGateway:
    """In-memory stand-in for ``TronGateway`` with scriptable failures."""

    def __init__(self):
        self.native = {}
        self.token = {}
        self.fees = {"TRX": "1.1", "USDT": "13.8~30"}
        self.transfers = {"TRX": [], "USDT": []}
        self.head = ChainHead(number=1000, timestamp=3_000_000)
        self.submissions = []
        self.calls = []
        self.fail_reads = set()
        self.fail_head = False
        self.fail_scan_at = None
        self.fail_submit = False
        self.fail_keypair = False
        self.reject_with = None
        self._keys = TronGateway(session=object())
        self._counter = 0

    def generate_keypair(self):
        if self.fail_keypair:
            raise GatewayError("keypair generation failed")
        return self._keys.generate_keypair()

    def validate_address(self, address):
        self.calls.append("validate_address")
        return is_valid_address(address)

    def fetch_native_balance(self, address):
        self.calls.append("fetch_native_balance")
        if "TRX" in self.fail_reads:
            raise GatewayError("node down")
        return format_amount(self.native.get(address, 0))

    def fetch_token_balance(self, address):
        self.calls.append("fetch_token_balance")
        if "USDT" in self.fail_reads:
            raise GatewayError("node down")
        return format_amount(self.token.get(address, 0))

    def get_native_balance(self, address):
        try:
            return self.fetch_native_balance(address)
        except GatewayError:
            return format_amount(0)

    def get_token_balance(self, address):
        try:
            return self.fetch_token_balance(address)
        except GatewayError:
            return format_amount(0)

    def estimate_fee(self, token_type):
        self.calls.append("estimate_fee")
        return FeeEstimate.parse(self.fees[TokenType.parse(token_type).value])

    def submit_native_transfer(self, private_key, to_address, amount):
        return self._submit(TokenType.TRX, private_key, to_address, amount)

    def submit_token_transfer(self, private_key, to_address, amount):
        return self._submit(TokenType.USDT, private_key, to_address, amount)

    def _submit(self, token, private_key, to_address, amount):
        self.submissions.append({
            "token": token,
            "key_buffer": private_key,
            "key_hex": bytes(private_key).hex(),
            "to": to_address,
            "amount": Decimal(amount),
        })
        if self.fail_submit:
            raise GatewayError("Ledger node request timed out")
        if self.reject_with:
            return SubmitResult("", False, self.reject_with)
        self._counter += 1
        return SubmitResult(format(self._counter, "064x"), True)

    def get_chain_head(self):
        if self.fail_head:
            raise GatewayError("node down")
        return self.head

    def list_recent_transfers(self, address, token_type):
        for i, record in enumerate(self.transfers[TokenType.parse(token_type).value]):
            if self.fail_scan_at is not None and i == self.fail_scan_at:
                raise GatewayError("indexer down")
            yield record


@pytest.fixture
def app():
    app = create_app("testing")
    app.extensions["ledger_gateway"] = FakeGateway()
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateway(app):
    return app.extensions["ledger_gateway"]


@pytest.fixture
def vault(app):
    return app.extensions["credential_vault"]


@pytest.fixture
def notifier(app):
    return app.extensions["wallet_notifier"]


@pytest.fixture
def account(app):
    """A registered user and their wallet."""
    from custody.services.auth_service import register_user
    return register_user("alice@example.com", "correct-horse")


@pytest.fixture
def other_address(app):
    return TronGateway(session=object()).generate_keypair().address
