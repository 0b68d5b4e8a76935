import os
import json
import copy
import logging
from pathlib import Path
from typing import Any

import pendulum

from sentinel_vault.config.config_vault import UTF8

logger = logging.getLogger(__name__)

AUTH_METHOD_KEY = "security.authMethod"
APP_LOCK_KEY = "security.appLockEnabled"
BIOMETRIC_KEY = "security.biometricEnabled"

DEFAULT_SETTINGS = {
    "security": {
        "authMethod": "none",  # none, pin, biometric, both
        "appLockEnabled": False,
    },
}

_MISSING = object()


def _lookup(tree: dict, parts: list[str]) -> Any:
    current = tree
    for part in parts:
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


class SettingsStore:
    """
    Application settings persisted as one nested JSON document.

    Values are addressed by dotted paths: "security.authMethod" is
    settings["security"]["authMethod"]. Missing paths fall back to
    DEFAULT_SETTINGS. Every change is written through to disk.

    `load_failed` is True when a settings file existed but could not be
    read, so callers can tell stored defaults from lost settings.
    """

    def __init__(self, path: Path, defaults: dict | None = None):
        self.path = Path(path)
        self.defaults = copy.deepcopy(DEFAULT_SETTINGS if defaults is None else defaults)
        self.load_failed = False
        self._values = self._load()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding=UTF8) as f:
                values = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            # Defaults mean no lock. AuthGate re-locks if a PIN is still set.
            logger.error(f"[{pendulum.now().to_iso8601_string()}] Settings file unreadable, using defaults: {e}\n")
            self.load_failed = True
            return {}
        if not isinstance(values, dict):
            logger.error(f"[{pendulum.now().to_iso8601_string()}] Settings file is not an object, using defaults\n")
            self.load_failed = True
            return {}
        return values

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding=UTF8) as f:
            json.dump(self._values, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def get(self, path: str, default: Any = None) -> Any:
        """
        Read a setting.

        Args:
            path: Dotted key, e.g. "security.appLockEnabled".
            default: Returned when neither the file nor the defaults
                hold the key.
        """
        parts = path.split(".")
        value = _lookup(self._values, parts)
        if value is _MISSING:
            value = _lookup(self.defaults, parts)
        if value is _MISSING:
            return default
        return copy.deepcopy(value)

    def _assign(self, path: str, value: Any) -> None:
        parts = path.split(".")
        current = self._values
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

    def set(self, path: str, value: Any) -> None:
        """Write a setting and persist the document."""
        self._assign(path, value)
        self._save()

    def update(self, values: dict) -> None:
        """Write several dotted keys with one save."""
        for path, value in values.items():
            self._assign(path, value)
        self._save()

    def reset(self) -> None:
        """Return to defaults and delete the settings file."""
        self._values = {}
        self.load_failed = False
        self.path.unlink(missing_ok=True)

    def as_dict(self) -> dict:
        """Effective settings, defaults merged under stored values."""
        def merge(base, override):
            merged = dict(base)
            for key, value in override.items():
                if isinstance(value, dict) and isinstance(merged.get(key), dict):
                    merged[key] = merge(merged[key], value)
                else:
                    merged[key] = value
            return merged
        return copy.deepcopy(merge(self.defaults, self._values))
