import base64
import binascii
import hmac
import os
import secrets
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from argon2.low_level import hash_secret_raw, Type

from sentinel_vault.config.config_vault import *
from sentinel_vault.utils.errors import DecryptionFailed, DeviceKeyUnavailable


@dataclass(frozen=True)
class EncryptedSecretBlob:
    """
    IV and ciphertext of one stored secret.

    The two are one unit: they are stored, read and replaced together.
    """
    iv: bytes
    ciphertext: bytes

    def to_dict(self) -> dict:
        return {
            "iv": bytes_to_str(self.iv),
            "data": bytes_to_str(self.ciphertext),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedSecretBlob":
        """
        Rebuild a blob from its stored form.

        Raises:
            DecryptionFailed: If the stored blob is incomplete or not base64.
        """
        try:
            iv = str_to_bytes(data["iv"])
            ciphertext = str_to_bytes(data["data"])
        except (KeyError, TypeError, AttributeError, binascii.Error, ValueError) as e:
            raise DecryptionFailed(f"Encrypted secret is malformed: {e}") from e
        if len(iv) != IV_LEN or not ciphertext:
            raise DecryptionFailed("Encrypted secret is truncated")
        return cls(iv=iv, ciphertext=ciphertext)


class FileKeyStore:
    """
    Device key kept in a file readable only by the current user.

    The key never leaves this device: it is not part of exports and is
    not derived from anything the user knows.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> bytes | None:
        """
        Read the device key.

        Returns:
            The key, or None if no key file exists.

        Raises:
            DeviceKeyUnavailable: If the key file is unreadable or damaged.
        """
        if not self.path.exists():
            return None
        try:
            key = str_to_bytes(self.path.read_text(encoding=UTF8).strip())
        except (OSError, binascii.Error, ValueError) as e:
            raise DeviceKeyUnavailable(f"Device key is unreadable: {e}") from e
        if len(key) != DEVICE_KEY_LEN:
            raise DeviceKeyUnavailable("Device key has the wrong length")
        return key

    def create(self) -> bytes:
        """
        Generate and persist a new random device key.

        Side Effects:
            Writes the key file with 0o600 permissions, replacing any
            existing key.
        """
        key = secrets.token_bytes(DEVICE_KEY_LEN)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding=UTF8) as f:
            f.write(bytes_to_str(key))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)
        return key

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)


class SecretCipher:
    """
    Encrypts individual account secrets with the device key.

    AES-256-GCM with a fresh random 128 bit IV per call. Any tampering
    with IV, ciphertext or associated data makes decryption fail.
    """

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) != DEVICE_KEY_LEN:
            raise DeviceKeyUnavailable("Device key must be 32 bytes")
        self._aead: AESGCM | None = AESGCM(bytes(key))

    def _cipher(self) -> AESGCM:
        if self._aead is None:
            raise DeviceKeyUnavailable("Secret cipher is closed")
        return self._aead

    def encrypt(self, plaintext: bytes, associated_data: bytes = b"") -> EncryptedSecretBlob:
        """
        Encrypt a secret.

        Args:
            plaintext: Secret bytes.
            associated_data: Context the ciphertext is bound to (the
                account id in the vault). Must be repeated to decrypt.

        Returns:
            New blob. Encrypting the same input twice gives different blobs.
        """
        iv = secrets.token_bytes(IV_LEN)
        ciphertext = self._cipher().encrypt(iv, bytes(plaintext), associated_data)
        return EncryptedSecretBlob(iv=iv, ciphertext=ciphertext)

    def decrypt(self, blob: EncryptedSecretBlob, associated_data: bytes = b"") -> bytes:
        """
        Decrypt a secret.

        Raises:
            DecryptionFailed: Wrong key, corrupted blob, tampered IV or
                mismatched associated data.
        """
        try:
            return self._cipher().decrypt(blob.iv, blob.ciphertext, associated_data)
        except InvalidTag as e:
            raise DecryptionFailed("Secret failed authentication") from e
        except ValueError as e:
            raise DecryptionFailed(f"Secret could not be decrypted: {e}") from e

    def close(self) -> None:
        """Drop the key reference. Further use raises DeviceKeyUnavailable."""
        self._aead = None


def derive_export_key(passphrase: str,
                      salt: bytes = EXPORT_SALT,
                      iterations: int = EXPORT_PBKDF2_ITERATIONS) -> bytes:
    """
    Stretch an export passphrase into an AES-256 key with PBKDF2-HMAC-SHA256.

    Security:
        - The salt is fixed per application so archives stay readable
          by every install. See DESIGN.md.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=EXPORT_KEY_LEN,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode(UTF8))


def cbc_encrypt(plaintext: bytes, key: bytes) -> tuple[bytes, bytes]:
    """
    AES-CBC encrypt with PKCS#7 padding and a random IV.

    Returns:
        (iv, ciphertext)
    """
    iv = secrets.token_bytes(EXPORT_IV_LEN)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return iv, encryptor.update(padded) + encryptor.finalize()


def cbc_decrypt(iv: bytes, ciphertext: bytes, key: bytes) -> bytes:
    """
    AES-CBC decrypt and strip PKCS#7 padding.

    Raises:
        ValueError: Bad IV, ciphertext not a whole number of blocks, or
            invalid padding (usually a wrong key).
    """
    if not ciphertext or len(ciphertext) % (algorithms.AES.block_size // 8):
        raise ValueError("Ciphertext is not a whole number of blocks")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def _argon2(secret: bytes, salt: bytes, time_cost: int, memory_cost: int, parallelism: int) -> bytes:
    return hash_secret_raw(
        secret=secret,
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=PIN_HASH_LEN,
        type=Type.ID
    )


def hash_pin(pin: str) -> dict:
    """
    Hash a PIN with Argon2id and a random salt.

    Returns:
        Storable record holding salt, hash and the cost parameters used.
    """
    salt = secrets.token_bytes(PIN_SALT_LEN)
    params = {
        "time_cost": PIN_ARGON_TIME,
        "memory_cost": PIN_ARGON_MEMORY,
        "parallelism": PIN_ARGON_PARALLELISM,
    }
    digest = _argon2(pin.encode(UTF8), salt, **params)
    return {"salt": bytes_to_str(salt), "hash": bytes_to_str(digest), **params}


def verify_pin(pin: str, record: dict) -> bool:
    """
    Check a PIN against a record made by `hash_pin`.

    The final comparison is constant time.
    """
    salt = str_to_bytes(record["salt"])
    expected = str_to_bytes(record["hash"])
    digest = _argon2(
        pin.encode(UTF8),
        salt,
        time_cost=record["time_cost"],
        memory_cost=record["memory_cost"],
        parallelism=record["parallelism"],
    )
    return hmac.compare_digest(digest, expected)


def str_to_bytes(b64_str: str) -> bytes:
    """
    Decode a URL-safe base64 string into bytes.

    Args:
        b64_str: Base64 string (may omit padding).

    Raises:
        binascii.Error if input is invalid.
    """
    padding_chars = "=" * (-len(b64_str) % 4)
    return base64.urlsafe_b64decode(b64_str + padding_chars)


def bytes_to_str(byt_str: bytes) -> str:
    """
    Encode bytes into a URL-safe base64 string without padding.
    """
    return base64.urlsafe_b64encode(byt_str).decode("ascii").rstrip("=")
