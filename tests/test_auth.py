"""
Tests for the AuthGate state machine, PIN storage and app lock.
"""

import json

import pytest

from sentinel_vault.utils.auth_utils import (
    AuthGate, AuthState, PinStore, UnavailableBiometric, derive_auth_state, validate_pin_format,
)
from sentinel_vault.utils.errors import (
    AuthConfigurationError, AuthenticationFailed, VaultLocked,
)
from sentinel_vault.utils.settings_utils import SettingsStore


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def pin_store(tmp_path):
    return PinStore(tmp_path / "pin.json")


@pytest.fixture
def gate(settings, pin_store, biometric):
    return AuthGate(settings, pin_store, biometric)


def _reopen(settings, pin_store, biometric):
    return AuthGate(SettingsStore(settings.path), PinStore(pin_store.path), biometric)


# ── Derived state ────────────────────────────────────────────────────


class TestDerivedState:
    @pytest.mark.parametrize("pin_set, biometric_enabled, expected", [
        (False, False, AuthState.NONE),
        (True, False, AuthState.PIN),
        (False, True, AuthState.BIOMETRIC),
        (True, True, AuthState.BOTH),
    ])
    def test_table(self, pin_set, biometric_enabled, expected):
        assert derive_auth_state(pin_set, biometric_enabled) is expected

    def test_setting_values(self):
        assert [s.value for s in AuthState] == ["none", "pin", "biometric", "both"]


# ── PIN rules and storage ────────────────────────────────────────────


class TestPin:
    @pytest.mark.parametrize("pin", ["1234", "000000", "12345678"])
    def test_valid_pins(self, pin):
        validate_pin_format(pin)

    @pytest.mark.parametrize("pin", ["", "123", "12a4", "12 34", "١٢٣٤", None])
    def test_invalid_pins(self, pin):
        with pytest.raises(AuthConfigurationError):
            validate_pin_format(pin)

    def test_store_round_trip(self, pin_store):
        assert not pin_store.is_set()
        pin_store.set("4821")
        assert pin_store.is_set()
        assert pin_store.verify("4821")
        assert not pin_store.verify("4820")

    def test_pin_not_stored_in_plaintext(self, pin_store):
        pin_store.set("482193")
        assert "482193" not in pin_store.path.read_text()

    def test_verify_without_pin(self, pin_store):
        assert not pin_store.verify("1234")

    def test_damaged_pin_record(self, pin_store):
        pin_store.path.write_text("{broken")
        assert not pin_store.verify("1234")

    def test_clear(self, pin_store):
        pin_store.set("1234")
        pin_store.clear()
        pin_store.clear()
        assert not pin_store.is_set()


# ── Transitions ──────────────────────────────────────────────────────


class TestTransitions:
    def test_initial_state(self, gate, settings):
        assert gate.state is AuthState.NONE
        assert not gate.is_locked
        assert not gate.lock_enabled
        assert settings.get("security.authMethod") == "none"
        assert settings.get("security.appLockEnabled") is False

    def test_set_pin(self, gate, settings):
        assert gate.set_pin("1234") is AuthState.PIN
        assert settings.get("security.authMethod") == "pin"

    def test_invalid_pin_leaves_state(self, gate):
        with pytest.raises(AuthConfigurationError):
            gate.set_pin("12")
        assert gate.state is AuthState.NONE

    def test_enable_biometric_alone(self, gate, biometric, settings):
        assert gate.enable_biometric() is AuthState.BIOMETRIC
        assert len(biometric.prompts) == 1
        assert settings.get("security.authMethod") == "biometric"

    def test_pin_then_biometric_is_both(self, gate, settings):
        gate.set_pin("1234")
        assert gate.enable_biometric() is AuthState.BOTH
        assert settings.get("security.authMethod") == "both"

    def test_disable_biometric_keeps_pin(self, gate):
        gate.set_pin("1234")
        gate.enable_biometric()
        assert gate.disable_biometric() is AuthState.PIN

    def test_remove_pin_keeps_biometric(self, gate):
        gate.set_pin("1234")
        gate.enable_biometric()
        assert gate.remove_pin() is AuthState.BIOMETRIC

    def test_rejected_biometric_challenge(self, gate, biometric):
        biometric.answer = False
        with pytest.raises(AuthenticationFailed):
            gate.enable_biometric()
        assert gate.state is AuthState.NONE

    def test_biometric_unavailable(self, settings, pin_store):
        gate = AuthGate(settings, pin_store, UnavailableBiometric())
        with pytest.raises(AuthConfigurationError):
            gate.enable_biometric()

    def test_default_oracle_is_unavailable(self, settings, pin_store):
        gate = AuthGate(settings, pin_store)
        assert not gate.biometric.is_available()

    @pytest.mark.parametrize("setup", [
        [],
        ["pin"],
        ["bio"],
        ["pin", "bio"],
        ["pin", "bio", "lock"],
    ])
    def test_remove_all_always_none(self, gate, pin_store, setup):
        if "pin" in setup:
            gate.set_pin("1234")
        if "bio" in setup:
            gate.enable_biometric()
        if "lock" in setup:
            gate.set_lock_enabled(True)

        assert gate.remove_all() is AuthState.NONE
        assert not gate.lock_enabled
        assert not pin_store.is_set()


# ── App lock ─────────────────────────────────────────────────────────


class TestLock:
    def test_cannot_enable_lock_without_credential(self, gate):
        with pytest.raises(AuthConfigurationError):
            gate.set_lock_enabled(True)
        assert not gate.lock_enabled

    def test_lock_setting_persisted(self, gate, settings):
        gate.set_pin("1234")
        gate.set_lock_enabled(True)
        assert settings.get("security.appLockEnabled") is True

    def test_foreground_without_lock_stays_open(self, gate):
        gate.set_pin("1234")
        assert not gate.on_foreground()

    def test_foreground_locks(self, gate):
        gate.set_pin("1234")
        gate.set_lock_enabled(True)
        assert gate.on_foreground()
        assert gate.is_locked

    def test_pin_unlocks_after_failed_attempts(self, gate):
        gate.set_pin("1234")
        gate.set_lock_enabled(True)
        gate.on_foreground()

        for wrong in ["0000", "1111", "4321"]:
            with pytest.raises(AuthenticationFailed):
                gate.authenticate_pin(wrong)
            assert gate.is_locked

        gate.authenticate_pin("1234")
        assert not gate.is_locked

    def test_biometric_unlock(self, gate, biometric):
        gate.enable_biometric()
        gate.set_lock_enabled(True)
        gate.on_foreground()

        biometric.answer = False
        with pytest.raises(AuthenticationFailed):
            gate.authenticate_biometric()
        assert gate.is_locked

        biometric.answer = True
        gate.authenticate_biometric()
        assert not gate.is_locked

    def test_pin_fallback_when_both(self, gate, biometric):
        gate.set_pin("1234")
        gate.enable_biometric()
        gate.set_lock_enabled(True)
        gate.on_foreground()

        biometric.answer = False
        with pytest.raises(AuthenticationFailed):
            gate.authenticate_biometric()
        gate.authenticate_pin("1234")
        assert not gate.is_locked

    def test_authenticate_with_unconfigured_method(self, gate):
        with pytest.raises(AuthConfigurationError):
            gate.authenticate_pin("1234")
        with pytest.raises(AuthConfigurationError):
            gate.authenticate_biometric()

    def test_changes_rejected_while_locked(self, gate):
        gate.set_pin("1234")
        gate.set_lock_enabled(True)
        gate.on_foreground()

        with pytest.raises(VaultLocked):
            gate.remove_all()
        with pytest.raises(VaultLocked):
            gate.set_pin("9999")
        assert gate.state is AuthState.PIN

    def test_dropping_to_none_disables_lock(self, gate, settings):
        gate.set_pin("1234")
        gate.set_lock_enabled(True)
        gate.remove_pin()

        assert gate.state is AuthState.NONE
        assert not gate.lock_enabled
        assert settings.get("security.appLockEnabled") is False
        assert not gate.on_foreground()


# ── Persistence ──────────────────────────────────────────────────────


class TestPersistence:
    def test_state_restored(self, gate, settings, pin_store, biometric):
        gate.set_pin("1234")
        gate.enable_biometric()

        reopened = _reopen(settings, pin_store, biometric)
        assert reopened.state is AuthState.BOTH

    def test_locked_at_startup(self, gate, settings, pin_store, biometric):
        gate.set_pin("1234")
        gate.set_lock_enabled(True)

        reopened = _reopen(settings, pin_store, biometric)
        assert reopened.is_locked
        reopened.authenticate_pin("1234")
        assert not reopened.is_locked

    def test_stale_lock_setting_ignored(self, settings, pin_store, biometric):
        settings.set("security.appLockEnabled", True)
        gate = AuthGate(settings, pin_store, biometric)

        assert not gate.lock_enabled
        assert not gate.is_locked
        assert settings.get("security.appLockEnabled") is False

    @pytest.mark.parametrize("method, expected", [
        ("biometric", AuthState.BIOMETRIC),
        ("both", AuthState.BIOMETRIC),
        ("pin", AuthState.NONE),
        ("none", AuthState.NONE),
    ])
    def test_auth_method_read_when_flag_absent(self, settings, pin_store, biometric, method, expected):
        # Written with only the two documented keys
        settings.path.write_text(json.dumps(
            {"security": {"authMethod": method, "appLockEnabled": True}}
        ))

        gate = AuthGate(SettingsStore(settings.path), pin_store, biometric)

        assert gate.state is expected
        assert gate.lock_enabled is (expected is not AuthState.NONE)
        assert gate.is_locked is (expected is not AuthState.NONE)

    def test_biometric_method_survives_restart(self, settings, pin_store, biometric):
        settings.path.write_text(json.dumps(
            {"security": {"authMethod": "biometric", "appLockEnabled": True}}
        ))
        AuthGate(SettingsStore(settings.path), pin_store, biometric)

        stored = json.loads(settings.path.read_text())["security"]
        assert stored["authMethod"] == "biometric"
        assert stored["appLockEnabled"] is True
        assert stored["biometricEnabled"] is True

    def test_unknown_auth_method_is_none(self, settings, pin_store, biometric):
        settings.path.write_text(json.dumps({"security": {"authMethod": "retina"}}))
        gate = AuthGate(SettingsStore(settings.path), pin_store, biometric)
        assert gate.state is AuthState.NONE

    def test_explicit_biometric_flag_wins(self, settings, pin_store, biometric):
        settings.path.write_text(json.dumps(
            {"security": {"authMethod": "biometric", "biometricEnabled": False}}
        ))
        gate = AuthGate(SettingsStore(settings.path), pin_store, biometric)
        assert gate.state is AuthState.NONE

    @pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
    def test_unreadable_settings_with_pin_stay_locked(self, settings, pin_store, biometric, content):
        pin_store.set("1234")
        settings.path.write_text(content)

        gate = AuthGate(SettingsStore(settings.path), pin_store, biometric)

        assert gate.state is AuthState.PIN
        assert gate.lock_enabled
        assert gate.is_locked
        with pytest.raises(AuthenticationFailed):
            gate.authenticate_pin("0000")
        gate.authenticate_pin("1234")
        assert not gate.is_locked

    def test_unreadable_settings_without_pin_open(self, settings, pin_store, biometric):
        settings.path.write_text("{not json")
        gate = AuthGate(SettingsStore(settings.path), pin_store, biometric)
        assert gate.state is AuthState.NONE
        assert not gate.is_locked

    def test_auth_method_mirror_repaired(self, settings, pin_store, biometric):
        pin_store.set("1234")
        settings.set("security.authMethod", "none")

        gate = AuthGate(settings, pin_store, biometric)
        assert gate.state is AuthState.PIN
        assert settings.get("security.authMethod") == "pin"
