"""Cryptographic services for ShopVault.

Two symmetric codecs share the server-held 32-byte key:

* ``BackupCodec`` - AES-256-CBC over the canonical JSON of a backup, the hex
  ciphertext gzip-compressed and base64-encoded for JSON transport. The IV
  travels in the backup's file name.
* ``TokenCipher`` - AES-256-GCM for the OAuth session cookie, so any
  client-side tampering is detected.

Decryption failures of either codec surface as a single ``CryptoError``.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import logging
import re
import secrets
import zlib
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from shopvault.core.errors import ConfigurationError, CryptoError, ValidationError
from shopvault.core.settings import settings

logger = logging.getLogger(__name__)

KEY_LENGTH_BYTES = 32
IV_LENGTH_BYTES = 16
GCM_NONCE_BYTES = 12
GCM_TAG_BYTES = 16
AES_BLOCK_BITS = 128

IV_HEX_PATTERN = re.compile(r"^[0-9a-fA-F]{32}$")
FILENAME_IV_PATTERN = re.compile(r"-iv-([0-9a-fA-F]{32})(?![0-9a-fA-F])")

BACKUP_DECRYPT_FAILED = (
    "Failed to decrypt backup. The encryption key may have changed or the file is corrupted."
)


def require_key(raw: str | bytes | None) -> bytes:
    """Validate the configured encryption key.

    Args:
        raw: Key from configuration; a 32-character string or 32 raw bytes

    Returns:
        The key as 32 bytes

    Raises:
        ConfigurationError: If the key is missing or has the wrong length
    """
    if raw is None:
        raise ConfigurationError(
            "Server encryption key not configured properly",
            detail="BACKUP_ENCRYPTION_KEY is not set",
        )
    key = raw.encode("utf-8") if isinstance(raw, str) else bytes(raw)
    if len(key) != KEY_LENGTH_BYTES:
        raise ConfigurationError(
            "Server encryption key not configured properly",
            detail=f"BACKUP_ENCRYPTION_KEY must be {KEY_LENGTH_BYTES} bytes, got {len(key)}",
        )
    return key


def is_valid_iv(iv: object) -> bool:
    """Return True for a 32-character hex string."""
    return isinstance(iv, str) and bool(IV_HEX_PATTERN.match(iv))


def build_backup_filename(iv_hex: str, now: datetime | None = None) -> str:
    """Return ``backup-<timestamp>-iv-<iv>.json.gz`` for a new backup."""
    moment = now or datetime.now(UTC)
    timestamp = moment.strftime("%Y-%m-%dT%H-%M-%S")
    return f"backup-{timestamp}-iv-{iv_hex}.json.gz"


def parse_iv_from_filename(file_name: str) -> str:
    """Recover the IV embedded in a backup file name.

    Raises:
        ValidationError: If the name carries no ``-iv-<32 hex>`` segment
    """
    match = FILENAME_IV_PATTERN.search(file_name or "")
    if not match:
        raise ValidationError("IV not found in backup file name")
    return match.group(1).lower()


def canonical_json(payload: Any) -> str:
    """Serialize a payload to the compact JSON form used for encryption."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class EncryptedEnvelope:
    """IV plus ciphertext needed to decrypt one payload."""

    iv: bytes
    ciphertext: bytes

    @property
    def iv_hex(self) -> str:
        return self.iv.hex()


@dataclass(frozen=True)
class EncryptedBackup:
    """Transport form of an encrypted backup."""

    file_name: str
    file_content: str
    iv: str


class BackupCodec:
    """AES-256-CBC + gzip + base64 codec for backup documents."""

    def __init__(
        self,
        key: bytes,
        *,
        max_plaintext_bytes: int | None = None,
        max_encoded_bytes: int | None = None,
    ) -> None:
        self._key = require_key(key)
        self.max_plaintext_bytes = (
            max_plaintext_bytes if max_plaintext_bytes is not None else settings.max_backup_bytes
        )
        self.max_encoded_bytes = (
            max_encoded_bytes if max_encoded_bytes is not None else settings.max_encrypted_bytes
        )

    def _cipher(self, iv: bytes) -> Cipher[modes.CBC]:
        return Cipher(algorithms.AES(self._key), modes.CBC(iv))

    def encrypt_bytes(self, plaintext: bytes) -> EncryptedEnvelope:
        """Encrypt raw bytes under a fresh random IV."""
        iv = secrets.token_bytes(IV_LENGTH_BYTES)
        padder = padding.PKCS7(AES_BLOCK_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = self._cipher(iv).encryptor()
        return EncryptedEnvelope(iv=iv, ciphertext=encryptor.update(padded) + encryptor.finalize())

    def decrypt_bytes(self, envelope: EncryptedEnvelope) -> bytes:
        """Decrypt an envelope produced by ``encrypt_bytes``.

        Raises:
            CryptoError: On a wrong IV length, wrong key or corrupted ciphertext
        """
        try:
            decryptor = self._cipher(envelope.iv).decryptor()
            padded = decryptor.update(envelope.ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(AES_BLOCK_BITS).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as err:
            raise CryptoError(BACKUP_DECRYPT_FAILED, detail=str(err)) from err

    def encrypt_text(self, text: str) -> EncryptedEnvelope:
        return self.encrypt_bytes(text.encode("utf-8"))

    def decrypt_text(self, envelope: EncryptedEnvelope) -> str:
        plaintext = self.decrypt_bytes(envelope)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as err:
            raise CryptoError(BACKUP_DECRYPT_FAILED, detail="plaintext is not UTF-8") from err

    def seal(self, document: Any, *, now: datetime | None = None) -> EncryptedBackup:
        """Serialize, encrypt, compress and encode a backup document.

        Args:
            document: JSON-serializable backup document
            now: Timestamp for the file name (defaults to the current UTC time)

        Returns:
            ``EncryptedBackup`` with the file name, base64 content and IV

        Raises:
            ValidationError: If the serialized document exceeds the size limit
        """
        text = canonical_json(document)
        if len(text.encode("utf-8")) > self.max_plaintext_bytes:
            limit_mb = self.max_plaintext_bytes // (1024 * 1024)
            raise ValidationError(f"Backup data too large. Maximum size is {limit_mb}MB")

        envelope = self.encrypt_text(text)
        compressed = gzip.compress(envelope.ciphertext.hex().encode("ascii"))
        file_content = base64.b64encode(compressed).decode("ascii")
        return EncryptedBackup(
            file_name=build_backup_filename(envelope.iv_hex, now),
            file_content=file_content,
            iv=envelope.iv_hex,
        )

    def open(self, file_content: str, iv_hex: str) -> Any:
        """Reverse ``seal``: decode, decompress, decrypt and parse.

        Raises:
            ValidationError: If the IV is malformed or the content oversized
            CryptoError: If any decoding or decryption step fails
        """
        if not is_valid_iv(iv_hex):
            raise ValidationError("Invalid IV format")
        if not isinstance(file_content, str) or not file_content:
            raise ValidationError("File content is required")
        if len(file_content) > self.max_encoded_bytes:
            raise ValidationError("File content too large")

        try:
            compressed = base64.b64decode(file_content, validate=True)
            ciphertext = bytes.fromhex(gzip.decompress(compressed).decode("ascii"))
        except (binascii.Error, OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as err:
            raise CryptoError(BACKUP_DECRYPT_FAILED, detail=f"malformed backup content: {err}") from err

        text = self.decrypt_text(EncryptedEnvelope(iv=bytes.fromhex(iv_hex), ciphertext=ciphertext))
        try:
            return json.loads(text)
        except json.JSONDecodeError as err:
            raise CryptoError(BACKUP_DECRYPT_FAILED, detail="decrypted payload is not JSON") from err


class TokenCipher:
    """AES-256-GCM cipher for the session cookie.

    Output format is ``<nonce hex>:<tag hex>:<ciphertext hex>``.
    """

    def __init__(self, key: bytes) -> None:
        self._aead = AESGCM(require_key(key))

    def encrypt(self, plaintext: str) -> str:
        nonce = secrets.token_bytes(GCM_NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-GCM_TAG_BYTES], sealed[-GCM_TAG_BYTES:]
        return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """Decrypt and authenticate a token produced by ``encrypt``.

        Raises:
            CryptoError: If the token is malformed, tampered with, or was
                produced under a different key
        """
        parts = token.split(":") if isinstance(token, str) else []
        if len(parts) != 3:
            raise CryptoError(detail="token must have three segments")
        try:
            nonce, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as err:
            raise CryptoError(detail="token segments are not hex") from err
        if len(nonce) != GCM_NONCE_BYTES or len(tag) != GCM_TAG_BYTES:
            raise CryptoError(detail="token nonce or tag has the wrong length")
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as err:
            raise CryptoError(detail="token authentication failed") from err

    def encrypt_json(self, payload: dict[str, Any]) -> str:
        return self.encrypt(canonical_json(payload))

    def decrypt_json(self, token: str) -> dict[str, Any]:
        text = self.decrypt(token)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as err:
            raise CryptoError(detail="token payload is not JSON") from err
        if not isinstance(payload, dict):
            raise CryptoError(detail="token payload is not an object")
        return payload


def get_backup_codec() -> BackupCodec:
    """Build a backup codec from the configured key."""
    return BackupCodec(require_key(settings.backup_encryption_key))


def get_token_cipher() -> TokenCipher:
    """Build a cookie cipher from the configured key."""
    return TokenCipher(require_key(settings.backup_encryption_key))
