"""
Shared pytest fixtures for the SentinelVault test suite.

  - Argon2 PIN hashing runs with minimal cost parameters.
  - Clocks are fixed and adjustable, nothing reads the wall clock.
  - The biometric sensor is a fake whose answer tests control.
  - Every vault lives in a temp directory, never in DATA_DIR.
"""

import os

import pytest

import sentinel_vault.utils.crypto_utils as crypto_mod
from sentinel_vault.utils.Account import Account
from sentinel_vault.utils.crypto_utils import SecretCipher
from sentinel_vault.utils.time_source import TimeSource
from sentinel_vault.utils.vault_context import VaultContext


GITHUB_SECRET = "JBSWY3DPEHPK3PXP"


@pytest.fixture(autouse=True)
def _cheap_argon2(monkeypatch):
    """Production Argon2 parameters take ~64 MiB and noticeable time per hash."""
    monkeypatch.setattr(crypto_mod, "PIN_ARGON_TIME", 1)
    monkeypatch.setattr(crypto_mod, "PIN_ARGON_MEMORY", 8 * 1024)
    monkeypatch.setattr(crypto_mod, "PIN_ARGON_PARALLELISM", 1)


class FixedClock:
    """Callable clock returning a settable Unix time in seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBiometric:
    """Biometric oracle with a scripted answer. Records every prompt."""

    def __init__(self, available: bool = True, answer: bool = True):
        self.available = available
        self.answer = answer
        self.prompts = []

    def is_available(self) -> bool:
        return self.available

    def authenticate(self, reason: str) -> bool:
        self.prompts.append(reason)
        return self.answer


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def time_source(clock):
    return TimeSource(offset_ms=0, clock=clock)


@pytest.fixture
def biometric():
    return FakeBiometric()


@pytest.fixture
def github_account():
    return Account(issuer="GitHub", account_label="me@example.com", secret=GITHUB_SECRET)


@pytest.fixture
def cipher():
    return SecretCipher(os.urandom(32))


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "vault"


@pytest.fixture
def ctx(data_dir, biometric, time_source):
    context = VaultContext.create(
        data_dir,
        biometric=biometric,
        time_source=time_source,
        sync_time=False,
    )
    yield context
    context.close()
