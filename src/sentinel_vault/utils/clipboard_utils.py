import logging
import threading

import pyperclip

from sentinel_vault.config.config_vault import CLIPBOARD_TIMEOUT

logger = logging.getLogger(__name__)


def copy_to_clipboard(text: str, timeout: int = CLIPBOARD_TIMEOUT) -> threading.Timer | None:
    """
    Copy a code or passphrase to the system clipboard with auto-clear.

    If a timeout is given, a background daemon timer clears the clipboard
    after the delay, but only if it still holds what was copied.

    Args:
        text: Text to copy.
        timeout: Seconds before the clipboard is cleared. A value of 0 or
            less disables auto-clear.

    Returns:
        The started timer, or None when auto-clear is disabled.

    Raises:
        pyperclip.PyperclipException: If no clipboard mechanism exists.

    Security Notes:
        - Clipboard managers may keep their own history.
    """
    if not text:
        raise ValueError("Nothing to copy")

    pyperclip.copy(text)

    if timeout <= 0:
        return None

    timer = threading.Timer(timeout, clear_clipboard, args=(text,))
    timer.daemon = True
    timer.start()
    return timer


def clear_clipboard(expected: str | None = None) -> bool:
    """
    Empty the clipboard.

    Args:
        expected: Only clear if the clipboard still holds this text, so
            something the user copied later is left alone.

    Returns:
        True if the clipboard was cleared.
    """
    try:
        if expected is not None and pyperclip.paste() != expected:
            return False
        pyperclip.copy("")
    except pyperclip.PyperclipException as e:
        logger.warning(f"Clipboard could not be cleared: {e}")
        return False
    return True
