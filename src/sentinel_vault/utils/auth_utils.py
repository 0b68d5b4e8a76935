import os
import re
import json
import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Protocol

import pendulum
from argon2.exceptions import Argon2Error

from sentinel_vault.config.config_vault import PIN_MIN_LEN, UTF8
from sentinel_vault.utils.crypto_utils import hash_pin, verify_pin
from sentinel_vault.utils.errors import (
    AuthenticationFailed, AuthConfigurationError, VaultLocked
)
from sentinel_vault.utils.settings_utils import (
    SettingsStore, AUTH_METHOD_KEY, APP_LOCK_KEY, BIOMETRIC_KEY
)

logger = logging.getLogger(__name__)

BIOMETRIC_REASON = "Authenticate to access your accounts"


class AuthState(Enum):
    """Configured authentication methods. Values are the stored setting."""
    NONE = "none"
    PIN = "pin"
    BIOMETRIC = "biometric"
    BOTH = "both"

    @property
    def uses_pin(self) -> bool:
        return self in (AuthState.PIN, AuthState.BOTH)

    @property
    def uses_biometric(self) -> bool:
        return self in (AuthState.BIOMETRIC, AuthState.BOTH)


def derive_auth_state(pin_set: bool, biometric_enabled: bool) -> AuthState:
    """State is a pure function of the two credential flags."""
    if pin_set and biometric_enabled:
        return AuthState.BOTH
    if pin_set:
        return AuthState.PIN
    if biometric_enabled:
        return AuthState.BIOMETRIC
    return AuthState.NONE


def validate_pin_format(pin: str) -> None:
    """
    Raises:
        AuthConfigurationError: If the PIN is not at least PIN_MIN_LEN digits.
    """
    if not isinstance(pin, str) or not re.fullmatch(r"[0-9]+", pin):
        raise AuthConfigurationError("PIN must contain digits only")
    if len(pin) < PIN_MIN_LEN:
        raise AuthConfigurationError(f"PIN must be at least {PIN_MIN_LEN} digits")


class PinStore:
    """
    Argon2id hash of the app PIN in its own file.

    Independent of the device key: verifying a PIN never touches the
    account secrets.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def is_set(self) -> bool:
        return self.path.exists()

    def set(self, pin: str) -> None:
        validate_pin_format(pin)
        record = hash_pin(pin)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding=UTF8) as f:
            json.dump(record, f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def verify(self, pin: str) -> bool:
        """
        Check a PIN against the stored hash.

        Returns False when no PIN is stored or the record is damaged.
        """
        if not isinstance(pin, str) or not self.path.exists():
            return False
        try:
            with self.path.open("r", encoding=UTF8) as f:
                record = json.load(f)
            return verify_pin(pin, record)
        except (OSError, ValueError, KeyError, TypeError, Argon2Error) as e:
            logger.error(f"[{pendulum.now().to_iso8601_string()}] PIN record unreadable: {e}\n")
            return False

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class BiometricOracle(Protocol):
    """Platform biometric capability. Calls may block on the user."""

    def is_available(self) -> bool: ...

    def authenticate(self, reason: str) -> bool: ...


class UnavailableBiometric:
    """Oracle for platforms without a biometric sensor."""

    def is_available(self) -> bool:
        return False

    def authenticate(self, reason: str) -> bool:
        return False


@dataclass(frozen=True)
class _AuthFlags:
    pin_set: bool = False
    biometric_enabled: bool = False
    lock_enabled: bool = False


class AuthGate:
    """
    Tracks configured authentication methods and whether the vault is locked.

    States:
        NONE, PIN, BIOMETRIC, BOTH, derived from (pin_set, biometric_enabled).

    The lock flag may only be on while the state is not NONE. When it is
    on, `on_foreground()` locks the vault until a PIN or biometric
    challenge succeeds. Failed challenges leave the gate locked and may
    be retried without limit.

    At startup the biometric flag comes from `security.biometricEnabled`,
    or from `security.authMethod` when that key is absent. The PIN file
    decides whether a PIN is set. Every transition writes
    `security.authMethod`, `security.appLockEnabled` and
    `security.biometricEnabled` to settings.
    The flags are replaced as a whole, never mutated in place.
    """

    def __init__(self, settings: SettingsStore, pin_store: PinStore,
                 biometric: BiometricOracle | None = None):
        self.settings = settings
        self.pin_store = pin_store
        self.biometric = biometric or UnavailableBiometric()

        pin_set = pin_store.is_set()
        biometric_enabled = settings.get(BIOMETRIC_KEY)
        if biometric_enabled is None:
            biometric_enabled = self._stored_method(settings).uses_biometric
        lock_enabled = bool(settings.get(APP_LOCK_KEY, False))

        if settings.load_failed and pin_set:
            # Settings lost while a PIN exists: keep the lock on
            logger.warning(f"[{pendulum.now().to_iso8601_string()}] "
                           f"Settings unreadable with a PIN set, app lock forced on\n")
            lock_enabled = True

        self._flags = self._normalize(_AuthFlags(pin_set, bool(biometric_enabled), lock_enabled))
        self._locked = False
        self._persist()

        # Starting the app counts as coming to the foreground
        self.on_foreground()

    # ==============================================================
    # Read-only state
    # ==============================================================
    @property
    def state(self) -> AuthState:
        return derive_auth_state(self._flags.pin_set, self._flags.biometric_enabled)

    @property
    def lock_enabled(self) -> bool:
        return self._flags.lock_enabled

    @property
    def is_locked(self) -> bool:
        return self._locked

    def require_unlocked(self) -> None:
        """
        Raises:
            VaultLocked: If the gate is currently locked.
        """
        if self._locked:
            raise VaultLocked("Vault is locked. Authenticate first.")

    # ==============================================================
    # Transitions
    # ==============================================================
    @staticmethod
    def _stored_method(settings: SettingsStore) -> AuthState:
        """Auth method as written in settings. Unknown values count as NONE."""
        value = settings.get(AUTH_METHOD_KEY)
        try:
            return AuthState(value)
        except ValueError:
            logger.warning(f"[{pendulum.now().to_iso8601_string()}] Unknown auth method {value!r} in settings\n")
            return AuthState.NONE

    @staticmethod
    def _normalize(flags: _AuthFlags) -> _AuthFlags:
        if derive_auth_state(flags.pin_set, flags.biometric_enabled) is AuthState.NONE:
            return replace(flags, lock_enabled=False)
        return flags

    def _apply(self, **changes) -> None:
        self._flags = self._normalize(replace(self._flags, **changes))
        if self.state is AuthState.NONE:
            self._locked = False
        self._persist()

    def _persist(self) -> None:
        self.settings.update({
            AUTH_METHOD_KEY: self.state.value,
            APP_LOCK_KEY: self._flags.lock_enabled,
            BIOMETRIC_KEY: self._flags.biometric_enabled,
        })

    def set_pin(self, pin: str) -> AuthState:
        """
        Set or replace the PIN.

        Raises:
            VaultLocked: If the gate is locked.
            AuthConfigurationError: If the PIN format is invalid.
        """
        self.require_unlocked()
        self.pin_store.set(pin)
        self._apply(pin_set=True)
        logger.info(f"PIN set, auth state {self.state.value}")
        return self.state

    def remove_pin(self) -> AuthState:
        self.require_unlocked()
        self.pin_store.clear()
        self._apply(pin_set=False)
        return self.state

    def enable_biometric(self, reason: str = BIOMETRIC_REASON) -> AuthState:
        """
        Turn on biometric unlock after a successful challenge.

        Raises:
            VaultLocked: If the gate is locked.
            AuthConfigurationError: If no biometric sensor is available.
            AuthenticationFailed: If the challenge is rejected.
        """
        self.require_unlocked()
        if not self.biometric.is_available():
            raise AuthConfigurationError("Biometric authentication is not available on this device")
        if not self.biometric.authenticate(reason):
            raise AuthenticationFailed("Biometric authentication failed")
        self._apply(biometric_enabled=True)
        return self.state

    def disable_biometric(self) -> AuthState:
        self.require_unlocked()
        self._apply(biometric_enabled=False)
        return self.state

    def remove_all(self) -> AuthState:
        """Drop every credential. Always ends in NONE with the lock off."""
        self.require_unlocked()
        self.pin_store.clear()
        self._apply(pin_set=False, biometric_enabled=False, lock_enabled=False)
        return self.state

    def set_lock_enabled(self, enabled: bool) -> None:
        """
        Raises:
            AuthConfigurationError: Enabling while no credential is configured.
        """
        self.require_unlocked()
        if enabled and self.state is AuthState.NONE:
            raise AuthConfigurationError("Set up a PIN or biometric before enabling app lock")
        self._apply(lock_enabled=bool(enabled))

    # ==============================================================
    # Locking
    # ==============================================================
    def on_foreground(self) -> bool:
        """
        Lock if app lock is on and a credential exists.

        Returns:
            True if the gate is locked afterwards.
        """
        if self._flags.lock_enabled and self.state is not AuthState.NONE:
            self._locked = True
        return self._locked

    def authenticate_pin(self, pin: str) -> None:
        """
        Raises:
            AuthConfigurationError: If no PIN is configured.
            AuthenticationFailed: If the PIN does not match.
        """
        if not self.state.uses_pin:
            raise AuthConfigurationError("No PIN is configured")
        if not self.pin_store.verify(pin):
            logger.warning(f"[{pendulum.now().to_iso8601_string()}] PIN authentication failed\n")
            raise AuthenticationFailed("Incorrect PIN")
        self._locked = False

    def authenticate_biometric(self, reason: str = BIOMETRIC_REASON) -> None:
        """
        Raises:
            AuthConfigurationError: If biometric unlock is not enabled.
            AuthenticationFailed: If the oracle says no.
        """
        if not self.state.uses_biometric:
            raise AuthConfigurationError("Biometric unlock is not enabled")
        if not self.biometric.authenticate(reason):
            raise AuthenticationFailed("Biometric authentication failed")
        self._locked = False
