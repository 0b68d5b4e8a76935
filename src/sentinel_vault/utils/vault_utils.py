import os
import json
import logging
import shutil
from pathlib import Path
from typing import Dict, Any, Iterable

import pendulum

from sentinel_vault.config.config_vault import *
from sentinel_vault.utils.Account import Account
from sentinel_vault.utils.crypto_utils import SecretCipher, EncryptedSecretBlob
from sentinel_vault.utils.errors import DecryptionFailed, VaultError

logger = logging.getLogger(__name__)


def load_vault_file(path: Path) -> Dict[str, Any]:
    """
    Load the raw vault document without decrypting anything.

    Returns:
        Vault dictionary. A missing file gives an empty vault.

    Raises:
        VaultError: If the vault file is not valid JSON.
    """
    path = Path(path)
    if not path.exists():
        return {"vault_version": VERSION, "entries": {}}
    try:
        with path.open("r", encoding=UTF8) as f:
            vault = json.load(f)
    except json.JSONDecodeError as e:
        msg = "Vault file is not valid JSON or is corrupted!"
        logger.error(f"[{pendulum.now().to_iso8601_string()}] {msg}\n")
        raise VaultError(msg) from e

    if not isinstance(vault, dict):
        raise VaultError("Vault file has an unexpected layout")
    if not isinstance(vault.get("entries"), dict):
        vault["entries"] = {}
    return vault


class VaultStore:
    """
    Encrypted account records on disk.

    Only the secret of each record is encrypted, bound to the account id.
    Metadata stays readable so a damaged secret only costs that one
    record.

    Not safe for concurrent writers: callers serialize save/delete.
    """

    def __init__(self, path: Path, cipher: SecretCipher):
        self.path = Path(path)
        self.cipher = cipher
        # ids of records skipped by the last list() call
        self.skipped: list[str] = []

    # ==============================================================
    # File access
    # ==============================================================
    def _read(self) -> Dict[str, Any]:
        return load_vault_file(self.path)

    def _write(self, entries: Dict[str, Any]) -> None:
        """
        Atomically replace the vault file.

        Side Effects:
            Writes a temp file, fsyncs it, then renames it over the vault.
        """
        vault = {
            "vault_version": VERSION,
            "entries": dict(entries),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write to temporary file first.
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding=UTF8) as f:
            json.dump(vault, f, indent=2)
            f.flush()
            os.fsync(f.fileno()) # force to disk

        os.replace(tmp, self.path)

    def has_records(self) -> bool:
        """True if any record exists, readable or not."""
        return bool(self._read()["entries"])

    # ==============================================================
    # Records
    # ==============================================================
    def _encode(self, account: Account) -> Dict[str, Any]:
        record = account.to_dict()
        blob = self.cipher.encrypt(record["secret"].encode(UTF8), account.id.encode(UTF8))
        record["secret"] = blob.to_dict()
        return record

    def _decode(self, aid: str, record: Dict[str, Any]) -> Account:
        """
        Turn a stored record back into an Account.

        Raises:
            DecryptionFailed: If the secret cannot be decrypted or the
                record does not describe a valid account.
        """
        if not isinstance(record, dict):
            raise DecryptionFailed(f"Record {aid} is not an object")

        blob = EncryptedSecretBlob.from_dict(record.get("secret"))
        plaintext = self.cipher.decrypt(blob, aid.encode(UTF8))

        data = dict(record)
        try:
            data["secret"] = plaintext.decode(UTF8)
            account = Account.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise DecryptionFailed(f"Record {aid} is invalid: {e}") from e

        if account.id != aid:
            raise DecryptionFailed(f"Record {aid} carries a different id")
        return account

    def list(self) -> list[Account]:
        """
        Decrypt every record.

        Each record is decrypted on its own. Unreadable records are logged,
        listed in `self.skipped` and left out. The rest of the vault is
        still returned.

        Returns:
            Accounts sorted by issuer, then account label.
        """
        accounts: list[Account] = []
        self.skipped = []

        for aid, record in self._read()["entries"].items():
            try:
                accounts.append(self._decode(aid, record))
            except DecryptionFailed as e:
                self.skipped.append(aid)
                logger.error(f"[{pendulum.now().to_iso8601_string()}] corrupted entry {aid}: {e}\n")

        accounts.sort(key=lambda a: (a.issuer.lower(), a.account_label.lower()))
        return accounts

    def get(self, aid: str) -> Account | None:
        """
        Decrypt a single record.

        Returns:
            The account, or None if no record has this id.

        Raises:
            DecryptionFailed: If the record exists but cannot be read.
        """
        record = self._read()["entries"].get(aid)
        if record is None:
            return None
        return self._decode(aid, record)

    def save(self, account: Account) -> Account:
        """
        Insert or replace a record.

        The secret is re-encrypted with a fresh IV on every save.

        Returns:
            The same account, still holding its plaintext secret.
        """
        vault = self._read()
        entries = vault["entries"]
        entries[account.id] = self._encode(account)
        self._write(entries)
        return account

    def save_many(self, accounts: Iterable[Account]) -> None:
        """Insert or replace several records with a single file write."""
        vault = self._read()
        entries = vault["entries"]
        for account in accounts:
            entries[account.id] = self._encode(account)
        self._write(entries)

    def delete(self, aid: str) -> None:
        """Remove a record. Unknown ids are ignored."""
        vault = self._read()
        entries = vault["entries"]
        if entries.pop(aid, None) is None:
            return
        self._write(entries)

    def destroy(self) -> None:
        """Delete the vault file. Used only by an explicit vault reset."""
        self.path.unlink(missing_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.unlink(missing_ok=True)

    def backup(self, target: Path) -> Path:
        """
        Copy the encrypted vault file as-is.

        Used before a reset so the encrypted records are not lost if the
        device key turns up again.
        """
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.path, target)
        return target
