import logging
import time
import urllib.request
from email.utils import parsedate_to_datetime
from typing import Callable

import pendulum

from sentinel_vault.config.config_vault import TIME_SYNC_URL, TIME_SYNC_TIMEOUT

logger = logging.getLogger(__name__)


def fetch_reference_time_ms(url: str = TIME_SYNC_URL, timeout: float = TIME_SYNC_TIMEOUT) -> int:
    """
    Read the current time from a web server's Date header.

    One HEAD request, no retries. Resolution is one second which is
    enough for code periods measured in tens of seconds.

    Args:
        url: Server to ask.
        timeout: Socket timeout in seconds.

    Returns:
        Reference time in milliseconds since the Unix epoch.

    Raises:
        OSError: On network failure (URLError is a subclass).
        ValueError: If the response carries no usable Date header.
    """
    req = urllib.request.Request(
        url,
        method="HEAD",
        headers={"User-Agent": "sentinel-vault-timesync"}
    )
    with urllib.request.urlopen(req, timeout=timeout) as response:
        date_header = response.headers.get("Date")

    if not date_header:
        raise ValueError("Time server response has no Date header")

    reference = parsedate_to_datetime(date_header)
    return int(reference.timestamp() * 1000)


class TimeSource:
    """
    Local clock corrected by a fixed offset to a reference clock.

    The offset is established once, when the object is created, and only
    read afterwards, so a TimeSource can be shared between threads once
    construction has finished.
    """

    def __init__(self, offset_ms: int = 0, clock: Callable[[], float] = time.time):
        self._offset_ms = int(offset_ms)
        self._clock = clock

    @classmethod
    def synchronized(cls,
                     fetch: Callable[[], int] = fetch_reference_time_ms,
                     clock: Callable[[], float] = time.time) -> "TimeSource":
        """
        Build a TimeSource whose offset comes from one reference query.

        Any failure leaves the offset at 0 and the local clock is trusted.

        Args:
            fetch: Returns the reference time in milliseconds.
            clock: Local clock in seconds.
        """
        try:
            before = clock()
            reference_ms = fetch()
            after = clock()
            # Compare against the midpoint of the request
            local_ms = int((before + after) / 2 * 1000)
            offset_ms = reference_ms - local_ms
        except Exception as e:
            logger.warning(f"[{pendulum.now().to_iso8601_string()}] "
                           f"Time sync failed, using local clock. {e}")
            offset_ms = 0

        logger.info(f"Time offset: {offset_ms} ms")
        return cls(offset_ms=offset_ms, clock=clock)

    @property
    def offset_ms(self) -> int:
        return self._offset_ms

    def current_epoch_seconds(self) -> int:
        """Corrected Unix time in whole seconds."""
        adjusted_ms = int(self._clock() * 1000) + self._offset_ms
        return adjusted_ms // 1000
