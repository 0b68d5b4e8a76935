import os
import json
import secrets
import logging
from pathlib import Path
from typing import Iterable, Sequence

import pendulum

from sentinel_vault.config.config_vault import *
from sentinel_vault.config.wordlist import PASSPHRASE_WORDLIST
from sentinel_vault.utils.Account import Account
from sentinel_vault.utils.crypto_utils import derive_export_key, cbc_encrypt, cbc_decrypt
from sentinel_vault.utils.errors import (
    UnrecognizedFormat, MalformedArchive, WrongPassphraseOrCorruptFile
)

logger = logging.getLogger(__name__)


class PassphraseVault:
    """
    Portable encrypted archive of accounts, keyed by a passphrase.

    Archive layout, in this order with no length fields:

        MAGIC || IV (16 bytes) || AES-256-CBC/PKCS#7 ciphertext

    The plaintext is UTF-8 JSON:
        {"accounts": [...], "exportDate": "<ISO-8601>", "appVersion": "<ver>"}

    The key comes from PBKDF2-HMAC-SHA256 over the passphrase. The device
    key is never involved, so an archive can be opened on any install.
    """

    def __init__(self,
                 wordlist: Sequence[str] = PASSPHRASE_WORDLIST,
                 words: int = PASSPHRASE_WORDS,
                 magic: bytes = EXPORT_MAGIC):
        if not wordlist:
            raise ValueError("Word list cannot be empty")
        if words < 1:
            raise ValueError("Passphrase needs at least one word")
        self.wordlist = tuple(wordlist)
        self.words = words
        self.magic = magic

    # ==============================================================
    # Passphrase
    # ==============================================================
    def generate_passphrase(self) -> str:
        """
        Draw a new passphrase.

        Each word is chosen independently and uniformly with `secrets`.

        Security Notes:
            - This is the only copy of the archive key material. It is
              shown to the user once and never stored.
        """
        return " ".join(secrets.choice(self.wordlist) for _ in range(self.words))

    # ==============================================================
    # Export
    # ==============================================================
    def export(self, accounts: Iterable[Account], passphrase: str | None = None) -> tuple[str, bytes]:
        """
        Encrypt a snapshot of accounts into an archive.

        Args:
            accounts: Accounts to include, plaintext secrets included.
            passphrase: Use this passphrase instead of generating one.

        Returns:
            (passphrase, archive_bytes)
        """
        if passphrase is None:
            passphrase = self.generate_passphrase()
        if not passphrase:
            raise ValueError("Passphrase cannot be empty")

        document = {
            "accounts": [account.to_dict_export() for account in accounts],
            "exportDate": pendulum.now().to_iso8601_string(),
            "appVersion": VERSION,
        }
        plaintext = json.dumps(document).encode(UTF8)

        key = derive_export_key(passphrase)
        iv, ciphertext = cbc_encrypt(plaintext, key)
        del key, plaintext

        logger.info(f"Exported {len(document['accounts'])} accounts")
        return passphrase, self.magic + iv + ciphertext

    # ==============================================================
    # Import
    # ==============================================================
    def import_archive(self, data: bytes, passphrase: str) -> list[Account]:
        """
        Decrypt an archive and rebuild its accounts.

        Either every account is returned or an error is raised. Ids in
        the archive are kept so the caller can detect duplicates.

        Args:
            data: Raw archive bytes.
            passphrase: Passphrase shown at export time.

        Returns:
            New Account instances, in archive order.

        Raises:
            UnrecognizedFormat: Magic header missing. Checked before any
                key derivation.
            WrongPassphraseOrCorruptFile: Decryption or padding failed, or
                the plaintext is not JSON.
            MalformedArchive: The JSON has no usable `accounts` list.
        """
        data = bytes(data)
        if not data.startswith(self.magic):
            raise UnrecognizedFormat("Not a Sentinel export file")

        payload = data[len(self.magic):]
        if len(payload) <= EXPORT_IV_LEN:
            raise WrongPassphraseOrCorruptFile()

        iv, ciphertext = payload[:EXPORT_IV_LEN], payload[EXPORT_IV_LEN:]
        key = derive_export_key(passphrase)

        try:
            plaintext = cbc_decrypt(iv, ciphertext, key)
            document = json.loads(plaintext.decode(UTF8))
        except (ValueError, UnicodeDecodeError) as e:
            # JSONDecodeError is a ValueError
            logger.warning(f"[{pendulum.now().to_iso8601_string()}] Archive import failed to decrypt\n")
            raise WrongPassphraseOrCorruptFile() from e
        finally:
            del key

        return self._parse_document(document)

    @staticmethod
    def _parse_document(document) -> list[Account]:
        if not isinstance(document, dict) or "accounts" not in document:
            raise MalformedArchive("Archive has no accounts field")

        entries = document["accounts"]
        if not isinstance(entries, list):
            raise MalformedArchive("Archive accounts field is not a list")

        accounts = []
        for index, entry in enumerate(entries):
            try:
                accounts.append(Account.from_dict_export(entry))
            except (KeyError, TypeError, ValueError) as e:
                raise MalformedArchive(f"Archive entry {index} is invalid: {e}") from e
        return accounts


# ==============================================================
# De-duplication
# ==============================================================
def is_duplicate(candidate: Account, existing: Account) -> bool:
    """Same id, or same issuer, account label and secret."""
    if candidate.id == existing.id:
        return True
    return (
        candidate.issuer == existing.issuer
        and candidate.account_label == existing.account_label
        and candidate.secret == existing.secret
    )


def find_duplicates(existing: Iterable[Account], imported: Iterable[Account]) -> list[Account]:
    """Imported accounts already present in `existing`."""
    existing = list(existing)
    return [a for a in imported if any(is_duplicate(a, e) for e in existing)]


def merge_imported(existing: Iterable[Account],
                   imported: Iterable[Account]) -> tuple[list[Account], list[Account]]:
    """
    Split imported accounts into new ones and duplicates.

    An account repeated inside the archive itself counts as a duplicate
    after its first occurrence.

    Returns:
        (new_accounts, duplicates)
    """
    seen = list(existing)
    new_accounts, duplicates = [], []

    for account in imported:
        if any(is_duplicate(account, e) for e in seen):
            duplicates.append(account)
            continue
        new_accounts.append(account)
        seen.append(account)

    return new_accounts, duplicates


# ==============================================================
# Files
# ==============================================================
def write_archive(archive: bytes, export_dir: Path = EXPORT_DIR) -> Path:
    """
    Write archive bytes to a timestamped file.

    Returns:
        Path of the new `sentinel_export_<timestamp>.sav` file.
    """
    export_dir = Path(export_dir)
    export_dir.mkdir(parents=True, exist_ok=True)

    timestamp = pendulum.now().format(DT_FORMAT_EXPORT)
    path = export_dir / f"sentinel_export_{timestamp}{EXPORT_FILE_SUFFIX}"

    with open(path, "wb") as f:
        f.write(archive)
        f.flush()
        os.fsync(f.fileno()) # force to disk

    return path


def read_archive(path: Path) -> bytes:
    """Read archive bytes. Missing files raise FileNotFoundError."""
    with open(path, "rb") as f:
        return f.read()
