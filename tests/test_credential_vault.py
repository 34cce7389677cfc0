import pytest

from custody.services.credential_vault import CredentialVault
from custody.utils.exceptions import DecryptionError, EncryptionError


@pytest.fixture
def standalone():
    return CredentialVault(secret="unit-test-secret", log_rounds=4)


@pytest.mark.parametrize("plaintext", [
    "",
    "a",
    "0123456789abcdef",
    "d2b9" * 16,
    "non-ascii: ñ ü 漢字",
])
def test_encrypt_decrypt_round_trip(standalone, plaintext):
    assert standalone.decrypt(standalone.encrypt(plaintext)) == plaintext


def test_ciphertext_format(standalone):
    iv_hex, cipher_hex = standalone.encrypt("secret").split(":")
    assert len(bytes.fromhex(iv_hex)) == 16
    assert len(bytes.fromhex(cipher_hex)) % 16 == 0


def test_fresh_iv_per_call(standalone):
    first = standalone.encrypt("same plaintext")
    second = standalone.encrypt("same plaintext")
    assert first != second
    assert first.split(":")[0] != second.split(":")[0]


def test_reads_legacy_three_segment_rows(standalone):
    iv_hex, cipher_hex = standalone.encrypt("legacy private key").split(":")
    legacy = f"{iv_hex}:{cipher_hex[:10]}:{cipher_hex[10:]}"
    assert standalone.is_legacy_format(legacy)
    assert standalone.decrypt(legacy) == "legacy private key"


def test_new_rows_use_two_segments(standalone):
    assert not standalone.is_legacy_format(standalone.encrypt("x"))


@pytest.mark.parametrize("bad", [
    None,
    "",
    "no-separator",
    "a:b:c:d",
    "zz:zz",
    "abcd:" + "00" * 16,
])
def test_malformed_input_raises(standalone, bad):
    with pytest.raises(DecryptionError):
        standalone.decrypt(bad)


def test_truncated_ciphertext_raises(standalone):
    iv_hex, cipher_hex = standalone.encrypt("some secret text").split(":")
    with pytest.raises(DecryptionError):
        standalone.decrypt(f"{iv_hex}:{cipher_hex[:-2]}")


def test_wrong_key_does_not_return_plaintext(standalone):
    encrypted = standalone.encrypt("d2b9" * 16)
    other = CredentialVault(secret="another-secret")
    try:
        result = other.decrypt(encrypted)
    except DecryptionError:
        return
    # padding can validate by chance; the plaintext must still differ
    assert result != "d2b9" * 16


def test_encrypt_rejects_non_text(standalone):
    with pytest.raises(EncryptionError):
        standalone.encrypt(b"bytes")


def test_key_material_is_wipeable(standalone):
    buffer = standalone.decrypt_key_material(standalone.encrypt("ab" * 32))
    assert bytes(buffer) == b"\xab" * 32
    CredentialVault.wipe(buffer)
    assert bytes(buffer) == b"\x00" * 32


def test_key_material_must_be_hex(standalone):
    with pytest.raises(DecryptionError):
        standalone.decrypt_key_material(standalone.encrypt("not hex"))


def test_password_hash_and_verify(vault):
    hashed = vault.hash_password("correct-horse")
    assert hashed != "correct-horse"
    assert vault.verify_password("correct-horse", hashed)
    assert not vault.verify_password("wrong-horse", hashed)


def test_password_hashes_are_salted(vault):
    assert vault.hash_password("pw123456") != vault.hash_password("pw123456")


@pytest.mark.parametrize("stored", ["", "not-a-bcrypt-hash", None])
def test_verify_against_malformed_hash_is_false(vault, stored):
    assert vault.verify_password("anything", stored) is False


def test_init_app_requires_secret():
    from flask import Flask

    app = Flask(__name__)
    app.config["ENCRYPTION_KEY"] = None
    with pytest.raises(RuntimeError):
        CredentialVault().init_app(app)
