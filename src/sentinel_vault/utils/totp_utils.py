import hashlib
import hmac
import io
import logging
import struct
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

import pendulum
import pyotp
import qrcode

from sentinel_vault.config.config_vault import DEFAULT_DIGITS, TICK_INTERVAL
from sentinel_vault.utils.Account import Account, Algorithm
from sentinel_vault.utils.time_source import TimeSource

logger = logging.getLogger(__name__)


def hotp(key: bytes, counter: int,
         algorithm: Algorithm = Algorithm.SHA1,
         digits: int = DEFAULT_DIGITS) -> str:
    """
    RFC 4226 HOTP value for one counter.

    Args:
        key: Raw shared secret.
        counter: Moving factor, encoded as 8 byte big-endian.
        algorithm: HMAC hash.
        digits: Output length. Any positive value, the result is
            zero padded on the left.

    Returns:
        Code as a string of exactly `digits` characters.
    """
    msg = struct.pack(">Q", counter)
    mac = hmac.new(key, msg, algorithm.hash_name).digest()

    # Dynamic truncation
    offset = mac[-1] & 0x0F
    value = struct.unpack(">I", mac[offset:offset + 4])[0] & 0x7FFFFFFF

    return str(value % (10 ** digits)).zfill(digits)


def code_at(account: Account, epoch_seconds: int) -> str:
    """
    TOTP code of an account at a given Unix time.

    Raises:
        InvalidSecret: If the account secret cannot be decoded.
    """
    counter = epoch_seconds // account.period
    return hotp(account.secret_bytes(), counter, account.algorithm, account.digits)


def generate(account: Account, time_source: TimeSource) -> str:
    """
    Current RFC 6238 code for an account.

    Read-only, safe to call from several threads.

    Raises:
        InvalidSecret: If the account secret cannot be decoded.
    """
    return code_at(account, time_source.current_epoch_seconds())


def remaining_seconds(account: Account, time_source: TimeSource) -> int:
    """
    Seconds until the next code rotation, in [0, period).

    Returns 0 only exactly on a period boundary.
    """
    now = time_source.current_epoch_seconds()
    return (account.period - now % account.period) % account.period


def time_bucket(account: Account, time_source: TimeSource) -> int:
    """Index of the current period, the TOTP counter."""
    return time_source.current_epoch_seconds() // account.period


@dataclass
class CodeUpdate:
    """State of one account after a tick."""
    account_id: str
    code: str
    remaining: int
    changed: bool


class CodeTicker:
    """
    Keeps displayed codes and countdowns current by polling the clock.

    Ticks are not trusted to land on period boundaries: every tick compares
    the current time bucket of each account against the bucket its code
    was generated for, so missed ticks (suspend, slow terminal) are
    corrected on the next one. Call `resume()` after the process was in
    the background to recompute immediately.
    """

    def __init__(self, accounts: Iterable[Account], time_source: TimeSource,
                 on_update: Callable[[list[CodeUpdate]], None] | None = None,
                 interval: float = TICK_INTERVAL):
        self.time_source = time_source
        self.on_update = on_update
        self.interval = interval
        self._accounts: list[Account] = list(accounts)
        self._codes: dict[str, tuple[int, str]] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def set_accounts(self, accounts: Iterable[Account]) -> None:
        """Replace the watched accounts and drop cached codes."""
        self._accounts = list(accounts)
        self._codes.clear()

    def code_for(self, account_id: str) -> str | None:
        cached = self._codes.get(account_id)
        return cached[1] if cached else None

    def tick(self) -> list[CodeUpdate]:
        """
        Recompute countdowns, regenerate codes whose bucket changed.

        Accounts whose code cannot be generated are logged and left out.

        Returns:
            One CodeUpdate per account.
        """
        updates = []
        for account in self._accounts:
            bucket = time_bucket(account, self.time_source)
            cached = self._codes.get(account.id)
            changed = cached is None or cached[0] != bucket
            if changed:
                try:
                    code = generate(account, self.time_source)
                except ValueError as e:
                    logger.error(f"[{pendulum.now().to_iso8601_string()}] "
                                 f"Cannot generate code for {account.id}: {e}")
                    continue
                self._codes[account.id] = (bucket, code)
            else:
                code = cached[1]

            updates.append(CodeUpdate(
                account_id=account.id,
                code=code,
                remaining=remaining_seconds(account, self.time_source),
                changed=changed,
            ))

        if self.on_update is not None:
            self.on_update(updates)
        return updates

    def resume(self) -> list[CodeUpdate]:
        """Recompute right away, e.g. when returning to the foreground."""
        return self.tick()

    def start(self) -> None:
        """Tick in a background daemon thread until `stop()`."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()

        def run():
            self.tick()
            while not self._stop.wait(self.interval):
                self.tick()

        self._thread = threading.Thread(target=run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1.0)
            self._thread = None


def build_otp_uri(account: Account) -> str:
    """
    Provisioning URI for moving an account to another authenticator.

    Raises:
        ValueError: If the account cannot be expressed as a standard URI
            (pyotp accepts at most 10 digits).
    """
    totp = pyotp.TOTP(
        account.secret,
        digits=account.digits,
        digest=getattr(hashlib, account.algorithm.hash_name),
        name=account.account_label,
        issuer=account.issuer,
        interval=account.period,
    )
    return totp.provisioning_uri()


def render_totp_qr(account: Account) -> str:
    """
    Render the provisioning URI of an account as a terminal QR code.

    Returns:
        Multi-line string of block characters.
    """
    qr = qrcode.QRCode(border=2)
    qr.add_data(build_otp_uri(account))
    qr.make(fit=True)

    buf = io.StringIO()
    qr.print_ascii(out=buf, invert=True)
    return buf.getvalue()


def format_code(code: str) -> str:
    """Split a code in two halves for readability: '123 456'."""
    half = len(code) // 2
    return f"{code[:half]} {code[half:]}" if len(code) > 4 else code
