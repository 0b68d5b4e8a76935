import logging
from dataclasses import dataclass, field
from pathlib import Path

import pendulum

from sentinel_vault.config.config_vault import *
from sentinel_vault.utils.Account import Account, Algorithm
from sentinel_vault.utils.auth_utils import AuthGate, PinStore, BiometricOracle
from sentinel_vault.utils.crypto_utils import FileKeyStore, SecretCipher
from sentinel_vault.utils.errors import DeviceKeyUnavailable, VaultError
from sentinel_vault.utils.import_export import PassphraseVault, merge_imported
from sentinel_vault.utils.settings_utils import SettingsStore
from sentinel_vault.utils.time_source import TimeSource
from sentinel_vault.utils.totp_utils import generate, remaining_seconds
from sentinel_vault.utils.vault_utils import VaultStore, load_vault_file

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Outcome of an archive import."""
    imported: list[Account] = field(default_factory=list)
    duplicates: list[Account] = field(default_factory=list)


def reset_vault(data_dir: Path = DATA_DIR, confirm: bool = False) -> Path | None:
    """
    Destroy all stored accounts and the device key.

    The recovery path when the device key is lost. Credentials (PIN,
    biometric, app lock) are left as they are.

    Args:
        data_dir: Vault data directory.
        confirm: Must be True. The caller is responsible for getting
            explicit consent from the user.

    Returns:
        Path of a backup copy of the encrypted vault file, or None if
        there was no vault file.

    Raises:
        VaultError: If `confirm` is not True.
    """
    if confirm is not True:
        raise VaultError("Vault reset requires explicit confirmation")

    data_dir = Path(data_dir)
    vault_path = data_dir / VAULT_FILE_NAME
    key_store = FileKeyStore(data_dir / DEVICE_KEY_FILE_NAME)

    backup = None
    if vault_path.exists():
        timestamp = pendulum.now().format(DT_FORMAT_EXPORT)
        backup = data_dir / f"{vault_path.stem}_unreadable_{timestamp}{vault_path.suffix}"
        # The store is only used for file handling here, nothing is decrypted
        store = VaultStore(vault_path, cipher=None)
        store.backup(backup)
        store.destroy()

    key_store.delete()
    logger.warning(f"[{pendulum.now().to_iso8601_string()}] Vault reset. Backup: {backup}\n")
    return backup


class VaultContext:
    """
    Everything a front end needs, wired together once at startup.

    Owns the TimeSource, SecretCipher, VaultStore, SettingsStore, AuthGate
    and PassphraseVault. Vault operations raise VaultLocked while the
    gate is locked.

    Use `VaultContext.create()` or the context manager form:

        with VaultContext.create(data_dir) as ctx:
            ctx.add_account_from_uri(uri)
    """

    def __init__(self, data_dir: Path, time_source: TimeSource, cipher: SecretCipher,
                 store: VaultStore, settings: SettingsStore, auth: AuthGate,
                 passphrase_vault: PassphraseVault):
        self.data_dir = Path(data_dir)
        self.time_source = time_source
        self.cipher = cipher
        self.store = store
        self.settings = settings
        self.auth = auth
        self.passphrase_vault = passphrase_vault
        self._closed = False

    @classmethod
    def create(cls, data_dir: Path = DATA_DIR, *,
               biometric: BiometricOracle | None = None,
               time_source: TimeSource | None = None,
               sync_time: bool = TIME_SYNC_ENABLED) -> "VaultContext":
        """
        Open (or initialize) the vault in `data_dir`.

        A device key is generated on first use. If the key is gone while
        encrypted records remain, nothing is regenerated: the caller must
        offer `reset_vault`.

        Raises:
            DeviceKeyUnavailable: Key missing with records present, or key
                file damaged.
            VaultError: Vault file is not valid JSON.
        """
        data_dir = Path(data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)

        vault_path = data_dir / VAULT_FILE_NAME
        key_store = FileKeyStore(data_dir / DEVICE_KEY_FILE_NAME)

        key = key_store.load()
        if key is None:
            if load_vault_file(vault_path)["entries"]:
                msg = "Device key is missing but encrypted accounts exist"
                logger.error(f"[{pendulum.now().to_iso8601_string()}] {msg}\n")
                raise DeviceKeyUnavailable(msg)
            key = key_store.create()

        cipher = SecretCipher(key)
        del key

        settings = SettingsStore(data_dir / SETTINGS_FILE_NAME)
        auth = AuthGate(settings, PinStore(data_dir / PIN_FILE_NAME), biometric)

        if time_source is None:
            time_source = TimeSource.synchronized() if sync_time else TimeSource()

        return cls(
            data_dir=data_dir,
            time_source=time_source,
            cipher=cipher,
            store=VaultStore(vault_path, cipher),
            settings=settings,
            auth=auth,
            passphrase_vault=PassphraseVault(),
        )

    def close(self) -> None:
        """Drop the device key. The context cannot be used afterwards."""
        if self._closed:
            return
        self.cipher.close()
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _check(self) -> None:
        if self._closed:
            raise VaultError("Vault context is closed")
        self.auth.require_unlocked()

    # ==============================================================
    # Accounts
    # ==============================================================
    def accounts(self) -> list[Account]:
        """Readable accounts. Ids of unreadable records are in `self.store.skipped`."""
        self._check()
        return self.store.list()

    def get_account(self, account_id: str) -> Account:
        """
        Raises:
            KeyError: If no account has this id.
            DecryptionFailed: If the record cannot be read.
        """
        self._check()
        account = self.store.get(account_id)
        if account is None:
            raise KeyError(account_id)
        return account

    def add_account(self, issuer: str, account_label: str, secret: str,
                    algorithm: Algorithm | str = DEFAULT_ALGORITHM,
                    digits: int = DEFAULT_DIGITS,
                    period: int = DEFAULT_PERIOD) -> Account:
        """
        Enroll an account from manually entered fields.

        Raises:
            InvalidSecret: Secret is not valid base32.
            ValueError: Empty names or bad digits/period.
        """
        self._check()
        account = Account(
            issuer=issuer,
            account_label=account_label,
            secret=secret,
            algorithm=algorithm,
            digits=digits,
            period=period,
        )
        return self.store.save(account)

    def add_account_from_uri(self, uri: str) -> Account:
        """
        Enroll an account from an otpauth:// URI.

        Raises:
            InvalidUri, InvalidSecret
        """
        self._check()
        return self.store.save(Account.from_uri(uri))

    def delete_account(self, account_id: str) -> None:
        self._check()
        self.store.delete(account_id)

    def get_code(self, account_id: str) -> tuple[str, int]:
        """
        Current code of an account and seconds until it rotates.

        Updates the account's last used time.
        """
        account = self.get_account(account_id)
        code = generate(account, self.time_source)
        remaining = remaining_seconds(account, self.time_source)

        account.touch()
        self.store.save(account)
        return code, remaining

    # ==============================================================
    # Export / import
    # ==============================================================
    def export_accounts(self, passphrase: str | None = None) -> tuple[str, bytes]:
        """
        Archive every readable account.

        Returns:
            (passphrase, archive_bytes)
        """
        self._check()
        accounts = self.store.list()
        if self.store.skipped:
            logger.warning(f"[{pendulum.now().to_iso8601_string()}] "
                           f"Export skips {len(self.store.skipped)} unreadable accounts\n")
        return self.passphrase_vault.export(accounts, passphrase)

    def import_accounts(self, archive: bytes, passphrase: str) -> ImportResult:
        """
        Add the accounts of an archive that are not already in the vault.

        An account is a duplicate if its id matches, or its issuer,
        account label and secret all match an existing account. Nothing is
        saved unless the whole archive decrypts and parses.

        Raises:
            UnrecognizedFormat, WrongPassphraseOrCorruptFile, MalformedArchive
        """
        self._check()
        imported = self.passphrase_vault.import_archive(archive, passphrase)

        new_accounts, duplicates = merge_imported(self.store.list(), imported)

        # Never overwrite a record that exists but could not be read
        unreadable = set(self.store.skipped)
        duplicates += [a for a in new_accounts if a.id in unreadable]
        new_accounts = [a for a in new_accounts if a.id not in unreadable]

        if new_accounts:
            self.store.save_many(new_accounts)

        logger.info(f"Imported {len(new_accounts)} accounts, {len(duplicates)} duplicates")
        return ImportResult(imported=new_accounts, duplicates=duplicates)
