"""
Error taxonomy for the vault.

Callers catch the narrow classes to recover at the smallest possible scope
(one record, one import attempt). Only DeviceKeyUnavailable is vault-wide.
"""


class VaultError(Exception):
    """Base class for every error raised by sentinel_vault."""


class InvalidSecret(VaultError, ValueError):
    """Shared secret is not valid base32 or decodes to nothing."""


class InvalidUri(VaultError, ValueError):
    """An otpauth:// enrollment URI was rejected."""


class DecryptionFailed(VaultError):
    """A single stored secret could not be decrypted or authenticated."""


class DeviceKeyUnavailable(VaultError):
    """
    The device key is missing or unreadable.

    Every stored record is unreadable when this happens. Recovery is an
    explicit, user-confirmed vault reset.
    """


class ArchiveError(VaultError):
    """Base class for export archive import failures."""


class UnrecognizedFormat(ArchiveError):
    """The file does not start with the export magic header."""


class MalformedArchive(ArchiveError):
    """The archive decrypted but its JSON document is not usable."""


class WrongPassphraseOrCorruptFile(ArchiveError):
    """
    Decryption of the archive failed.

    Deliberately does not say whether the passphrase was wrong or the file
    was damaged.
    """

    def __init__(self, message: str = "Wrong passphrase or corrupted file."):
        super().__init__(message)


class AuthenticationFailed(VaultError):
    """PIN mismatch or biometric rejection."""


class AuthConfigurationError(VaultError):
    """An authentication setting change is not allowed in the current state."""


class VaultLocked(VaultError):
    """The vault was accessed while the auth gate is locked."""
