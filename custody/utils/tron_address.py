import base58
from Crypto.Hash import keccak

ADDRESS_PREFIX = 0x41
ADDRESS_LENGTH = 21


def keccak256(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def address_from_public_key(public_key: bytes) -> str:
    """Base58check address for a 64-byte uncompressed secp256k1 public key."""
    if len(public_key) == 65 and public_key[0] == 0x04:
        public_key = public_key[1:]
    if len(public_key) != 64:
        raise ValueError("expected a 64-byte uncompressed public key")
    raw = bytes([ADDRESS_PREFIX]) + keccak256(public_key)[-20:]
    return base58.b58encode_check(raw).decode("ascii")


def is_valid_address(value) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        raw = base58.b58decode_check(value)
    except ValueError:
        return False
    return len(raw) == ADDRESS_LENGTH and raw[0] == ADDRESS_PREFIX


def to_hex(address: str) -> str:
    """``T...`` base58 address -> ``41...`` hex address."""
    return base58.b58decode_check(address).hex()


def from_hex(hex_address: str) -> str:
    """``41...`` hex address -> ``T...`` base58 address."""
    raw = bytes.fromhex(hex_address)
    if len(raw) == 20:
        raw = bytes([ADDRESS_PREFIX]) + raw
    if len(raw) != ADDRESS_LENGTH:
        raise ValueError(f"invalid hex address: {hex_address}")
    return base58.b58encode_check(raw).decode("ascii")


def abi_encode_address(address: str) -> str:
    """32-byte ABI word for an address argument (prefix byte dropped)."""
    return to_hex(address)[2:].rjust(64, "0")


def abi_encode_uint(value: int) -> str:
    return format(int(value), "x").rjust(64, "0")
