import re
import getpass


def get_int(prompt: str, default=None, reprompt=True):
    """
    Prompt the user until a valid positive integer is entered.

    Allows the user to press Enter to accept a default value if provided.
    Rejects any input containing non-digit characters.

    Args:
        prompt: Text displayed to the user.
        default: Value returned if the user submits empty input. If None,
            the prompt repeats until a valid integer is entered.
        reprompt: If False, bypasses user input and returns the default.

    Returns:
        An integer parsed from user input, the default value if accepted,
        or None if the user enters 'q' to quit.
    """
    while True:
        val = input(prompt).strip() if reprompt else default

        if not val and default is not None:
            return default
        if isinstance(val, int):
            return val
        if re.fullmatch(r"[0-9]+", val):
            return int(val)
        if val == 'q':
            return None

        print("   Invalid. Numbers only  (q) to quit")


def get_pin(prompt: str = "PIN: ", confirm: bool = False) -> str | None:
    """
    Read a PIN without echo.

    Args:
        prompt: Text displayed to the user.
        confirm: Ask twice and require both entries to match.

    Returns:
        The PIN, or None if the confirmation did not match.
    """
    pin = getpass.getpass(prompt).strip()
    if confirm and getpass.getpass("Confirm PIN: ").strip() != pin:
        print("   PINs did not match.")
        return None
    return pin


def confirm_word(prompt: str, word: str) -> bool:
    """True only if the user types `word` exactly (case-insensitive)."""
    return input(f"{prompt} (type '{word}' to confirm): ").strip().lower() == word.lower()


def choose(prompt: str, options: list[str], default: int | None = None) -> int | None:
    """
    Print numbered options and return the chosen index.

    Args:
        prompt: Text displayed to the user.
        options: Labels to number from 1.
        default: Zero-based index returned on empty input.

    Returns:
        Zero-based index, or None if the user quits.
    """
    for i, option in enumerate(options, start=1):
        print(f"  {i:>3}) {option}")

    while True:
        selection = get_int(prompt, default=None if default is None else default + 1)
        if selection is None:
            return None
        if 1 <= selection <= len(options):
            return selection - 1
        print(f"   Invalid. Select 1 - {len(options)} or (q) to quit")
