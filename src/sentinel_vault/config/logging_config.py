import logging
import os
import sys
import traceback
from pathlib import Path

import pendulum

from sentinel_vault.config.config_vault import DATA_DIR, LOG_FILE_NAME, LOG_LEVEL


def setup_logging(log_dir: Path | None = None, level: str = LOG_LEVEL) -> Path | None:
    """
    Configure the root logger to append to the vault log file.

    Installs `log_uncaught_exceptions` as the interpreter excepthook so
    crashes end up in the same file instead of only on the terminal.

    Args:
        log_dir: Directory holding the log file. Defaults to DATA_DIR.
        level: Logging level name.

    Returns:
        Path of the log file, or None if logging was already configured.
    """
    if logging.getLogger().handlers:
        return None  # already configured

    log_dir = Path(log_dir or DATA_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    logging.basicConfig(
        filename=log_file,
        filemode="a",
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s %(message)s",
    )

    sys.excepthook = log_uncaught_exceptions
    return log_file


def log_uncaught_exceptions(exctype, value, tb):
    now = pendulum.now().to_iso8601_string()

    lines = []
    for frame in traceback.extract_tb(tb):
        filename = os.path.basename(frame.filename)
        lines.append(
            f'  File "{filename}", line {frame.lineno}, in {frame.name}'
        )

    trace_summary = "\n".join(reversed(lines)) if lines else "  <no traceback>"
    error_msg = f"{exctype.__name__}: {value}"

    logging.error(
        f"[{now}] Uncaught exception: {error_msg}\n"
        f"Traceback (most recent call last):\n"
        f"{trace_summary}\n"
        f"{error_msg}\n"
    )

    print("\nError! Something went wrong.", file=sys.stderr)
    print(f"Details saved to {LOG_FILE_NAME}\n", file=sys.stderr)
