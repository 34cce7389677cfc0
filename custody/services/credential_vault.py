"""Encryption of wallet private keys and hashing of user passwords.

Private keys are stored as ``iv_hex:cipher_hex`` (AES-256-CBC, PKCS7
padding, key = SHA-256 of the configured secret, fresh random IV per call).
Rows written by an earlier release carry a third segment; they are read
through ``decrypt`` but never written again.

Passwords use bcrypt through Flask-Bcrypt; verification recomputes the hash
with the stored salt and compares in constant time.
"""
import hashlib
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from flask_bcrypt import Bcrypt

from custody.utils.exceptions import DecryptionError, EncryptionError

logger = logging.getLogger(__name__)

IV_LENGTH = 16
BLOCK_BITS = 128


class CredentialVault:
    def __init__(self, secret=None, log_rounds=12):
        self._secret = secret
        self.log_rounds = log_rounds
        self._bcrypt = Bcrypt()

    def init_app(self, app):
        secret = app.config.get("ENCRYPTION_KEY")
        if not secret:
            raise RuntimeError("ENCRYPTION_KEY must be configured")
        self._secret = secret
        self.log_rounds = app.config.get("BCRYPT_LOG_ROUNDS", self.log_rounds)
        self._bcrypt.init_app(app)
        app.extensions["credential_vault"] = self

    def _key(self):
        if not self._secret:
            raise RuntimeError("Credential vault has no encryption secret")
        return hashlib.sha256(self._secret.encode("utf-8")).digest()

    # ---- private keys ----

    def encrypt(self, plaintext: str) -> str:
        if not isinstance(plaintext, str):
            raise EncryptionError("Only text can be encrypted")
        try:
            iv = os.urandom(IV_LENGTH)
            padder = padding.PKCS7(BLOCK_BITS).padder()
            data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._key()), modes.CBC(iv)).encryptor()
            encrypted = encryptor.update(data) + encryptor.finalize()
        except (ValueError, RuntimeError) as e:
            logger.error("Encryption failed: %s", type(e).__name__)
            raise EncryptionError()
        return f"{iv.hex()}:{encrypted.hex()}"

    def decrypt(self, encrypted_data: str) -> str:
        iv_hex, cipher_hex = self._split(encrypted_data)
        try:
            iv = bytes.fromhex(iv_hex)
            encrypted = bytes.fromhex(cipher_hex)
        except ValueError:
            raise DecryptionError("Encrypted data is not valid hex")

        if len(iv) != IV_LENGTH:
            raise DecryptionError("Invalid initialization vector length")
        if not encrypted or len(encrypted) % (BLOCK_BITS // 8):
            raise DecryptionError("Invalid ciphertext length")

        try:
            decryptor = Cipher(algorithms.AES(self._key()), modes.CBC(iv)).decryptor()
            padded = decryptor.update(encrypted) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except RuntimeError as e:
            raise DecryptionError(str(e))
        except (ValueError, UnicodeDecodeError):
            # wrong key or corrupted ciphertext; never log the data itself
            logger.error("Decryption failed: wrong key or corrupted ciphertext")
            raise DecryptionError()

    def decrypt_key_material(self, encrypted_data: str) -> bytearray:
        """Decrypt a hex private key into a buffer the caller can ``wipe``."""
        plaintext = self.decrypt(encrypted_data)
        try:
            return bytearray.fromhex(plaintext)
        except ValueError:
            raise DecryptionError("Decrypted data is not a hex private key")
        finally:
            del plaintext

    @staticmethod
    def wipe(buffer):
        if buffer is None:
            return
        for i in range(len(buffer)):
            buffer[i] = 0

    @staticmethod
    def is_legacy_format(encrypted_data) -> bool:
        return isinstance(encrypted_data, str) and encrypted_data.count(":") == 2

    @staticmethod
    def _split(encrypted_data):
        if not isinstance(encrypted_data, str) or not encrypted_data:
            raise DecryptionError("Invalid encrypted data format")
        parts = encrypted_data.split(":")
        if len(parts) == 2:
            return parts[0], parts[1]
        if len(parts) == 3:
            # legacy rows: iv:cipher_head:cipher_tail
            logger.warning("Reading private key stored in legacy 3-segment format")
            return parts[0], parts[1] + parts[2]
        logger.error("Invalid encrypted data format: %d segments", len(parts))
        raise DecryptionError("Invalid encrypted data format")

    # ---- passwords ----

    def hash_password(self, password: str) -> str:
        return self._bcrypt.generate_password_hash(password, rounds=self.log_rounds).decode("utf-8")

    def verify_password(self, password: str, hashed_password: str) -> bool:
        if not password or not hashed_password:
            return False
        try:
            return self._bcrypt.check_password_hash(hashed_password, password)
        except (ValueError, TypeError):
            return False
