"""HTTP client for the TRON full node and the TronGrid indexer.

The gateway is stateless with respect to keys: a signing key is passed to
each submit call and dropped when the call returns. Amounts cross this
boundary as base-unit integers on the wire and as ``Decimal`` / 6-place
strings everywhere else.
"""
import hashlib
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterator, Optional, Union

import requests
from ecdsa import SECP256k1, SigningKey, ellipticcurve, numbertheory
from ecdsa.util import sigencode_string_canonize
from flask import current_app

from custody.models.types import TokenType
from custody.utils.amounts import from_base_units, to_base_units, units_to_decimal
from custody.utils.exceptions import DecryptionError, GatewayError, ValidationError
from custody.utils.tron_address import (
    abi_encode_address,
    abi_encode_uint,
    address_from_public_key,
    from_hex,
    is_valid_address,
    to_hex,
)

logger = logging.getLogger(__name__)

BLOCK_INTERVAL_MS = 3000
PAGE_SIZE = 50


@dataclass(frozen=True)
class KeyPair:
    address: str
    private_key: str
    public_key: str

    def __repr__(self):
        return f"KeyPair(address={self.address!r})"


@dataclass(frozen=True)
class FeeEstimate:
    """Static fee quote in TRX; token transfers quote a ``low~high`` range."""

    low: Decimal
    high: Decimal

    @classmethod
    def parse(cls, value):
        text = str(value).strip()
        try:
            if "~" in text:
                low, high = (Decimal(part.strip()) for part in text.split("~", 1))
            else:
                low = high = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"invalid fee estimate: {value!r}")
        if low < 0 or high < low:
            raise ValueError(f"invalid fee estimate: {value!r}")
        return cls(low, high)

    @property
    def is_range(self):
        return self.low != self.high

    @property
    def upper(self):
        return self.high

    def bound(self, which="upper"):
        if which not in ("upper", "lower"):
            raise ValueError(f"unknown fee bound: {which!r}")
        return self.high if which == "upper" else self.low

    def __str__(self):
        if self.is_range:
            return f"{self.low}~{self.high}"
        return str(self.low)


@dataclass(frozen=True)
class SubmitResult:
    hash: str
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ChainHead:
    number: int
    timestamp: int


@dataclass(frozen=True)
class NativeTransfer:
    tx_hash: str
    from_address: str
    to_address: str
    amount: Decimal
    block_number: Optional[int] = None
    block_timestamp: Optional[int] = None
    fee: Optional[Decimal] = None
    succeeded: bool = True

    @property
    def token_type(self):
        return TokenType.TRX

    def confirmations(self, head: ChainHead) -> int:
        return _confirmations(self.block_number, self.block_timestamp, head)


@dataclass(frozen=True)
class TokenTransfer:
    tx_hash: str
    from_address: str
    to_address: str
    amount: Decimal
    block_timestamp: Optional[int] = None
    block_number: Optional[int] = None
    succeeded: bool = True

    @property
    def token_type(self):
        return TokenType.USDT

    def confirmations(self, head: ChainHead) -> int:
        return _confirmations(self.block_number, self.block_timestamp, head)


@dataclass(frozen=True)
class SkippedTransfer:
    tx_hash: Optional[str]
    reason: str


TransferRecord = Union[NativeTransfer, TokenTransfer, SkippedTransfer]


def _confirmations(block_number, block_timestamp, head):
    # indexer TRC-20 events carry no block number, only its timestamp
    if block_number is not None:
        return max(head.number - block_number, 0)
    if block_timestamp is not None:
        return max((head.timestamp - block_timestamp) // BLOCK_INTERVAL_MS, 0)
    return 0


def _optional_int(value):
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _node_message(message):
    """Node error messages come back hex-encoded."""
    if not message:
        return None
    try:
        return bytes.fromhex(message).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return str(message)


def recovery_id(verifying_key, digest, r, s):
    curve = SECP256k1.curve
    n = SECP256k1.order
    p = curve.p()
    e = int.from_bytes(digest, "big")
    target = verifying_key.pubkey.point
    alpha = (pow(r, 3, p) + curve.a() * r + curve.b()) % p
    beta = pow(alpha, (p + 1) // 4, p)
    r_inv = numbertheory.inverse_mod(r, n)
    for v in (0, 1):
        y = beta if beta % 2 == v else p - beta
        point_r = ellipticcurve.PointJacobi(curve, r, y, 1, n)
        candidate = (point_r * s + SECP256k1.generator * ((-e) % n)) * r_inv
        if candidate.x() == target.x() and candidate.y() == target.y():
            return v
    raise ValueError("could not derive signature recovery id")


def sign_digest(signing_key, digest: bytes) -> bytes:
    """65-byte recoverable secp256k1 signature (r || s || v) over a txID."""
    signature = signing_key.sign_digest_deterministic(
        digest, hashfunc=hashlib.sha256, sigencode=sigencode_string_canonize
    )
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    return signature + bytes([recovery_id(signing_key.get_verifying_key(), digest, r, s)])


class TronGateway:
    def __init__(
        self,
        base_url="https://api.trongrid.io",
        api_key=None,
        token_contract="TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t",
        timeout=15,
        native_fee="1.1",
        token_fee="13.8~30",
        fee_limit_sun=100_000_000,
        scan_limit=100,
        session=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.token_contract = token_contract
        self.timeout = timeout
        self.native_fee = native_fee
        self.token_fee = token_fee
        self.fee_limit_sun = fee_limit_sun
        self.scan_limit = scan_limit
        self._session = session or requests.Session()

    def init_app(self, app):
        self.base_url = app.config["TRON_API_URL"].rstrip("/")
        self.api_key = app.config.get("TRON_API_KEY")
        self.token_contract = app.config["USDT_CONTRACT_ADDRESS"]
        self.timeout = app.config.get("LEDGER_TIMEOUT", self.timeout)
        self.native_fee = app.config.get("TRX_FEE_ESTIMATE", self.native_fee)
        self.token_fee = app.config.get("USDT_FEE_ESTIMATE", self.token_fee)
        self.fee_limit_sun = app.config.get("TRC20_FEE_LIMIT_SUN", self.fee_limit_sun)
        self.scan_limit = app.config.get("TRANSFER_SCAN_LIMIT", self.scan_limit)
        app.extensions["ledger_gateway"] = self

    # ---- transport ----

    def _headers(self):
        return {"TRON-PRO-API-KEY": self.api_key} if self.api_key else {}

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.Timeout:
            raise GatewayError("Ledger node request timed out", {"path": path})
        except requests.RequestException as e:
            raise GatewayError(f"Ledger node unreachable: {e}", {"path": path})

        if resp.status_code in (401, 403):
            raise GatewayError("Ledger node rejected the API key", {"path": path, "status": resp.status_code})
        if resp.status_code >= 400:
            raise GatewayError(f"Ledger node returned HTTP {resp.status_code}", {"path": path, "status": resp.status_code})
        try:
            body = resp.json()
        except ValueError:
            raise GatewayError("Ledger node returned invalid JSON", {"path": path})
        if not isinstance(body, dict):
            raise GatewayError("Ledger node returned an unexpected payload", {"path": path})
        return body

    # ---- keys & addresses ----

    def generate_keypair(self) -> KeyPair:
        signing_key = SigningKey.generate(curve=SECP256k1)
        public = signing_key.get_verifying_key().to_string()
        return KeyPair(
            address=address_from_public_key(public),
            private_key=signing_key.to_string().hex(),
            public_key="04" + public.hex(),
        )

    def validate_address(self, address) -> bool:
        return is_valid_address(address)

    @staticmethod
    def _signing_key(private_key):
        try:
            if isinstance(private_key, str):
                private_key = bytes.fromhex(private_key)
            return SigningKey.from_string(bytes(private_key), curve=SECP256k1)
        except (ValueError, TypeError):
            raise DecryptionError("Signing key is not a valid secp256k1 key")

    @staticmethod
    def _owner_address(signing_key):
        return address_from_public_key(signing_key.get_verifying_key().to_string())

    # ---- balances ----

    def fetch_native_balance(self, address) -> str:
        account = self._request("POST", "/wallet/getaccount", json={"address": address, "visible": True})
        try:
            return from_base_units(account.get("balance", 0))
        except (TypeError, ValueError):
            raise GatewayError("Ledger node returned a malformed balance")

    def fetch_token_balance(self, address) -> str:
        try:
            return self._token_balance_from_contract(address)
        except GatewayError as e:
            logger.warning("balanceOf call failed for %s, trying indexer: %s", address, e.message)
            return self._token_balance_from_indexer(address)

    def _token_balance_from_contract(self, address):
        payload = {
            "owner_address": address,
            "contract_address": self.token_contract,
            "function_selector": "balanceOf(address)",
            "parameter": abi_encode_address(address),
            "visible": True,
        }
        result = self._request("POST", "/wallet/triggerconstantcontract", json=payload)
        constant = result.get("constant_result") or []
        if not (result.get("result") or {}).get("result") or not constant or not constant[0]:
            raise GatewayError("balanceOf returned no result")
        try:
            return from_base_units(int(constant[0], 16))
        except (TypeError, ValueError):
            raise GatewayError("balanceOf returned a malformed value")

    def _token_balance_from_indexer(self, address):
        body = self._request("GET", f"/v1/accounts/{address}")
        accounts = body.get("data") or []
        if not accounts:
            return from_base_units(0)
        for entry in accounts[0].get("trc20") or []:
            if isinstance(entry, dict) and self.token_contract in entry:
                try:
                    return from_base_units(int(entry[self.token_contract]))
                except (TypeError, ValueError):
                    raise GatewayError("Indexer returned a malformed token balance")
        return from_base_units(0)

    def get_native_balance(self, address) -> str:
        try:
            return self.fetch_native_balance(address)
        except GatewayError as e:
            logger.warning("TRX balance query failed for %s, reporting 0: %s", address, e.message)
            return from_base_units(0)

    def get_token_balance(self, address) -> str:
        try:
            return self.fetch_token_balance(address)
        except GatewayError as e:
            logger.warning("USDT balance query failed for %s, reporting 0: %s", address, e.message)
            return from_base_units(0)

    def estimate_fee(self, token_type) -> FeeEstimate:
        token = TokenType.parse(token_type)
        if token is None:
            raise ValidationError("Unsupported token type", {"token_type": str(token_type)})
        return FeeEstimate.parse(self.native_fee if token.is_native else self.token_fee)

    # ---- submission ----

    def submit_native_transfer(self, private_key, to_address, amount) -> SubmitResult:
        signing_key = self._signing_key(private_key)
        payload = {
            "owner_address": to_hex(self._owner_address(signing_key)),
            "to_address": to_hex(to_address),
            "amount": to_base_units(amount),
        }
        tx = self._request("POST", "/wallet/createtransaction", json=payload)
        if tx.get("Error") or not tx.get("txID"):
            return SubmitResult("", False, tx.get("Error") or "Transaction could not be created")
        return self._sign_and_broadcast(signing_key, tx)

    def submit_token_transfer(self, private_key, to_address, amount) -> SubmitResult:
        signing_key = self._signing_key(private_key)
        payload = {
            "owner_address": to_hex(self._owner_address(signing_key)),
            "contract_address": to_hex(self.token_contract),
            "function_selector": "transfer(address,uint256)",
            "parameter": abi_encode_address(to_address) + abi_encode_uint(to_base_units(amount)),
            "fee_limit": self.fee_limit_sun,
            "call_value": 0,
        }
        response = self._request("POST", "/wallet/triggersmartcontract", json=payload)
        result = response.get("result") or {}
        tx = response.get("transaction") or {}
        if not result.get("result") or not tx.get("txID"):
            return SubmitResult("", False, _node_message(result.get("message")) or "Transaction failed")
        return self._sign_and_broadcast(signing_key, tx)

    def _sign_and_broadcast(self, signing_key, tx):
        tx_id = tx["txID"]
        raw_hex = tx.get("raw_data_hex") or ""
        try:
            if hashlib.sha256(bytes.fromhex(raw_hex)).hexdigest() != tx_id:
                return SubmitResult("", False, "Node returned a transaction whose txID does not match its body")
        except ValueError:
            return SubmitResult("", False, "Node returned a malformed transaction")

        signed = dict(tx, signature=[sign_digest(signing_key, bytes.fromhex(tx_id)).hex()])
        try:
            result = self._request("POST", "/wallet/broadcasttransaction", json=signed)
        except GatewayError:
            logger.error("Broadcast of %s failed in transit; on-chain outcome unknown", tx_id)
            raise
        if result.get("result"):
            return SubmitResult(result.get("txid") or tx_id, True)
        reason = _node_message(result.get("message")) or result.get("code") or "Transaction failed"
        logger.warning("Node rejected broadcast of %s: %s", tx_id, reason)
        return SubmitResult("", False, reason)

    # ---- history ----

    def get_chain_head(self) -> ChainHead:
        block = self._request("POST", "/wallet/getnowblock")
        raw = (block.get("block_header") or {}).get("raw_data") or {}
        try:
            return ChainHead(int(raw["number"]), int(raw["timestamp"]))
        except (KeyError, TypeError, ValueError):
            raise GatewayError("Unexpected block header from ledger node")

    def list_recent_transfers(self, address, token_type) -> Iterator[TransferRecord]:
        """Newest-first transfers for ``address``; bounded by ``scan_limit``.

        Pages are fetched lazily, so a ``GatewayError`` can surface at any
        point of the iteration. The generator cannot be resumed.
        """
        token = TokenType.parse(token_type)
        if token is None:
            raise ValidationError("Unsupported token type", {"token_type": str(token_type)})
        if token.is_native:
            path = f"/v1/accounts/{address}/transactions"
            params = {"order_by": "block_timestamp,desc"}
            parse = self.parse_native_record
        else:
            path = f"/v1/accounts/{address}/transactions/trc20"
            params = {"order_by": "block_timestamp,desc", "contract_address": self.token_contract}
            parse = self.parse_token_record

        seen = 0
        fingerprint = None
        while seen < self.scan_limit:
            page_params = dict(params, limit=min(PAGE_SIZE, self.scan_limit - seen))
            if fingerprint:
                page_params["fingerprint"] = fingerprint
            body = self._request("GET", path, params=page_params)
            records = body.get("data") or []
            for raw in records:
                yield parse(raw)
                seen += 1
                if seen >= self.scan_limit:
                    return
            fingerprint = (body.get("meta") or {}).get("fingerprint")
            if not records or not fingerprint:
                return

    def parse_native_record(self, raw) -> TransferRecord:
        if not isinstance(raw, dict):
            return SkippedTransfer(None, "record is not an object")
        tx_hash = raw.get("txID")
        if not tx_hash:
            return SkippedTransfer(None, "missing transaction id")
        contracts = (raw.get("raw_data") or {}).get("contract") or []
        if not contracts or not isinstance(contracts[0], dict):
            return SkippedTransfer(tx_hash, "missing contract data")
        contract = contracts[0]
        if contract.get("type") != "TransferContract":
            return SkippedTransfer(tx_hash, f"unsupported contract type {contract.get('type')}")
        value = (contract.get("parameter") or {}).get("value") or {}
        try:
            from_address = from_hex(value["owner_address"])
            to_address = from_hex(value["to_address"])
            amount = units_to_decimal(value["amount"])
        except (KeyError, TypeError, ValueError):
            return SkippedTransfer(tx_hash, "malformed transfer value")

        ret = (raw.get("ret") or [{}])[0] or {}
        fee = _optional_int(ret.get("fee"))
        return NativeTransfer(
            tx_hash=tx_hash,
            from_address=from_address,
            to_address=to_address,
            amount=amount,
            block_number=_optional_int(raw.get("blockNumber")),
            block_timestamp=_optional_int(raw.get("block_timestamp")),
            fee=units_to_decimal(fee) if fee is not None else None,
            succeeded=ret.get("contractRet", "SUCCESS") == "SUCCESS",
        )

    def parse_token_record(self, raw) -> TransferRecord:
        if not isinstance(raw, dict):
            return SkippedTransfer(None, "record is not an object")
        tx_hash = raw.get("transaction_id")
        if not tx_hash:
            return SkippedTransfer(None, "missing transaction id")
        token_info = raw.get("token_info") or {}
        if token_info.get("address") != self.token_contract:
            return SkippedTransfer(tx_hash, "transfer of a different token contract")
        if raw.get("type", "Transfer") != "Transfer":
            return SkippedTransfer(tx_hash, f"unsupported event type {raw.get('type')}")
        from_address = raw.get("from")
        to_address = raw.get("to")
        if not is_valid_address(from_address) or not is_valid_address(to_address):
            return SkippedTransfer(tx_hash, "malformed transfer addresses")
        try:
            amount = units_to_decimal(raw["value"], token_info.get("decimals", 6))
        except (KeyError, TypeError, ValueError, InvalidOperation):
            return SkippedTransfer(tx_hash, "malformed transfer value")
        return TokenTransfer(
            tx_hash=tx_hash,
            from_address=from_address,
            to_address=to_address,
            amount=amount,
            block_timestamp=_optional_int(raw.get("block_timestamp")),
            block_number=_optional_int(raw.get("block_number")),
        )


def get_gateway():
    return current_app.extensions["ledger_gateway"]
