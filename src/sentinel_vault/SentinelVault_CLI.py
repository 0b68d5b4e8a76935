"""
SentinelVault - an offline TOTP authenticator for the terminal
"""
# ==============================================================
# Standard imports
# ==============================================================
import os
import sys
import time
import atexit
import getpass
import logging

# ==============================================================
# Other imports
# ==============================================================

try:
    import pendulum
    import pyperclip
    from sentinel_vault.config.config_vault import *
    from sentinel_vault.config.logging_config import setup_logging
    from sentinel_vault.utils.Account import Account, Algorithm
    from sentinel_vault.utils.auth_utils import AuthState
    from sentinel_vault.utils.clipboard_utils import copy_to_clipboard, clear_clipboard
    from sentinel_vault.utils.errors import (
        VaultError, DeviceKeyUnavailable, ArchiveError, AuthenticationFailed,
        AuthConfigurationError, WrongPassphraseOrCorruptFile
    )
    from sentinel_vault.utils.import_export import write_archive, read_archive
    from sentinel_vault.utils.totp_utils import CodeTicker, format_code, render_totp_qr
    from sentinel_vault.utils.user_input import get_int, get_pin, confirm_word, choose
    from sentinel_vault.utils.vault_context import VaultContext, reset_vault

except ImportError as e:
    missing_package = e.name if hasattr(e, "name") else "unknown package"
    print("Missing required dependency!")
    print(f"  {missing_package} is not installed")
    logging.error(f"  {missing_package} is not installed. See pyproject.toml")
    print("\nInstall with:")
    print("  pip install -e .")
    sys.exit(1)

logger = logging.getLogger(__name__)

# Security menu actions that change or remove credentials, or drop the lock
WEAKENING_CHOICES = {"set_pin", "remove_pin", "bio_off", "lock_off", "remove_auth"}

# ==============================================================
# Functions
# ==============================================================

def wipe_terminal(force=False):
    """
    Clears the terminal screen if CLEAR_SCREEN set to True.

    Args:
        force: Clear even when CLEAR_SCREEN is False.
    """
    if CLEAR_SCREEN or force:
        os.system('cls' if os.name == 'nt' else 'clear')


def open_vault() -> VaultContext | None:
    """
    Open the vault, offering a reset if the device key is lost.

    Returns:
        An open context, or None if the user declined the reset.
    """
    try:
        return VaultContext.create(DATA_DIR)
    except DeviceKeyUnavailable as e:
        print(f"\n{SEP_LG}")
        print(" The device key for this vault is missing or damaged.")
        print(f" {e}")
        print(" Stored accounts cannot be decrypted on this device.")
        print(" You can restore them from an export archive after a reset.")
        print(SEP_LG)

        if not confirm_word("\n Reset the vault and start empty?", "reset"):
            print(" Nothing changed.")
            return None

        backup = reset_vault(DATA_DIR, confirm=True)
        if backup:
            print(f" Old vault file kept as {backup}")
        return VaultContext.create(DATA_DIR)


def unlock(ctx: VaultContext) -> bool:
    """
    Prompt until the gate is unlocked.

    Biometric is tried first when enabled, PIN is the fallback.

    Returns:
        True when unlocked, False if the user quits.
    """
    state = ctx.auth.state

    while ctx.auth.is_locked:
        print(f"\n--- Vault locked ({state.value}) ---")

        if state.uses_biometric:
            try:
                ctx.auth.authenticate_biometric()
                break
            except AuthenticationFailed:
                print(" Biometric authentication failed.")
                if not state.uses_pin:
                    if input(" Try again? (y/n): ").strip().lower() != "y":
                        return False
                    continue

        pin = get_pin(" Enter PIN (q to quit): ")
        if pin.lower() == "q":
            return False
        try:
            ctx.auth.authenticate_pin(pin)
        except AuthenticationFailed:
            print(" Incorrect PIN.")

    print(" Unlocked.")
    return True


def list_accounts(ctx: VaultContext) -> list[Account]:
    """Print the account table and return the accounts in display order."""
    accounts = ctx.accounts()

    if ctx.store.skipped:
        print(f" Warning: {len(ctx.store.skipped)} account(s) could not be decrypted and are hidden.")
        print(f" Details in {LOG_FILE_NAME}")

    if not accounts:
        print(" No accounts yet.")
        return []

    print(f"\n {'#':>3}  {'Issuer':<{ISSUER_LEN}} {'Account':<{ACCOUNT_LEN}}")
    print(SEP_SM)
    for i, account in enumerate(accounts, start=1):
        print(f" {i:>3}) {account.issuer[:ISSUER_LEN]:<{ISSUER_LEN}} "
              f"{account.account_label[:ACCOUNT_LEN]:<{ACCOUNT_LEN}}")
    return accounts


def select_account(ctx: VaultContext) -> Account | None:
    accounts = list_accounts(ctx)
    if not accounts:
        return None

    while True:
        selection = get_int("\n Select account: ")
        if selection is None:
            return None
        if 1 <= selection <= len(accounts):
            return accounts[selection - 1]
        print(f"   Invalid. Select 1 - {len(accounts)} or (q) to quit")


def add_account_manual(ctx: VaultContext) -> None:
    issuer = input("Issuer (required): ").strip()
    label = input("Account (required): ").strip()
    secret = getpass.getpass("Secret key (base32): ").strip()

    algorithms = [a.value for a in Algorithm]
    index = choose(f" Algorithm [{DEFAULT_ALGORITHM}]: ", algorithms, default=algorithms.index(DEFAULT_ALGORITHM))
    algorithm = algorithms[index] if index is not None else DEFAULT_ALGORITHM

    digits = get_int(f" Digits [{DEFAULT_DIGITS}]: ", default=DEFAULT_DIGITS)
    period = get_int(f" Period in seconds [{DEFAULT_PERIOD}]: ", default=DEFAULT_PERIOD)
    if digits is None or period is None:
        return

    try:
        account = ctx.add_account(issuer, label, secret, algorithm, digits, period)
    except (VaultError, ValueError, TypeError) as e:
        print(f" Could not add account: {e}")
        return
    finally:
        del secret

    print(f" Added {account.issuer} ({account.account_label}).")


def add_account_uri(ctx: VaultContext) -> None:
    uri = getpass.getpass("otpauth:// URI: ").strip()
    try:
        account = ctx.add_account_from_uri(uri)
    except (VaultError, ValueError) as e:
        print(f" Could not add account: {e}")
        return
    finally:
        del uri

    print(f" Added {account.issuer} ({account.account_label}).")


def watch_codes(ctx: VaultContext) -> None:
    """
    Live table of codes with countdowns. Ctrl + C to stop.

    Codes are regenerated whenever an account enters a new period.
    """
    accounts = ctx.accounts()
    if not accounts:
        print(" No accounts yet.")
        return

    names = {a.id: f"{a.issuer[:ISSUER_LEN]:<{ISSUER_LEN}} {a.account_label[:ACCOUNT_LEN]:<{ACCOUNT_LEN}}"
             for a in accounts}

    def render(updates):
        wipe_terminal()
        print("Codes. Ctrl + C to stop.\n")
        for update in updates:
            print(f" {names[update.account_id]}  {format_code(update.code):>12}  ({update.remaining:2d}s)")

    ticker = CodeTicker(accounts, ctx.time_source, on_update=render)
    try:
        while True:
            ticker.tick()
            time.sleep(TICK_INTERVAL)
    except KeyboardInterrupt:
        print("\n Stopped.")


def copy_code(ctx: VaultContext) -> None:
    account = select_account(ctx)
    if account is None:
        return

    code, remaining = ctx.get_code(account.id)
    print(f"\n {account.issuer}: {format_code(code)}  (refreshes in {remaining}s)")
    try:
        copy_to_clipboard(code)
        print(f" Copied! (auto-clears in {CLIPBOARD_TIMEOUT}s)")
    except pyperclip.PyperclipException as e:
        print(f" Clipboard unavailable: {e}")


def show_qr(ctx: VaultContext) -> None:
    account = select_account(ctx)
    if account is None:
        return

    print("\n WARNING: this QR code contains the account secret.")
    if input(" Show it? (y/n): ").strip().lower() != "y":
        return
    try:
        print(render_totp_qr(account))
    except ValueError as e:
        print(f" Cannot build QR code: {e}")


def delete_account(ctx: VaultContext) -> None:
    account = select_account(ctx)
    if account is None:
        return
    if confirm_word(f"\nDelete {account.issuer} ({account.account_label}) permanently?", "del"):
        ctx.delete_account(account.id)
        print(" Account deleted.")


def export_accounts(ctx: VaultContext) -> None:
    print("\n The archive is protected by a generated passphrase.")
    print(" Without the passphrase the archive cannot be opened.\n")

    passphrase, archive = ctx.export_accounts()
    path = write_archive(archive, EXPORT_DIR)

    words = passphrase.split(" ")
    print(f" Exported to {path}\n")
    print(SEP_LG)
    print(" RECOVERY PASSPHRASE")
    for row in range(0, len(words), 4):
        print("   " + "  ".join(f"{w:<11}" for w in words[row:row + 4]))
    print(SEP_LG)
    print(" Write it down in a safe place. It is not stored anywhere.")

    if input("\n Copy passphrase to clipboard? (y/n): ").strip().lower() == "y":
        try:
            copy_to_clipboard(passphrase)
            print(f" Copied! (auto-clears in {CLIPBOARD_TIMEOUT}s)")
        except pyperclip.PyperclipException as e:
            print(f" Clipboard unavailable: {e}")
    del passphrase


def import_accounts(ctx: VaultContext) -> None:
    filename = input(f"Archive file (in {IMPORT_DIR} or full path): ").strip()
    if not filename:
        return
    path = IMPORT_DIR / filename if not os.path.isabs(filename) else filename

    try:
        archive = read_archive(path)
    except OSError as e:
        print(f" Cannot read {path}: {e}")
        return

    passphrase = getpass.getpass("Passphrase: ").strip()
    # Tolerate extra spaces between words
    passphrase = " ".join(passphrase.split())

    try:
        result = ctx.import_accounts(archive, passphrase)
    except WrongPassphraseOrCorruptFile:
        print(" Incorrect passphrase or invalid export file.")
        return
    except ArchiveError as e:
        print(f" Not a valid export archive: {e}")
        return
    finally:
        del passphrase

    print(f" Imported {len(result.imported)} account(s).")
    if result.duplicates:
        print(f" Skipped {len(result.duplicates)} account(s) already in the vault.")


def confirm_identity(auth) -> None:
    """
    Fresh challenge with the strongest configured method.

    PIN when one is set, otherwise biometric. Does nothing when no
    authentication is configured.

    Raises:
        AuthenticationFailed: If the challenge fails.
    """
    if auth.state.uses_pin:
        auth.authenticate_pin(get_pin(" Current PIN: "))
    elif auth.state.uses_biometric:
        auth.authenticate_biometric("Confirm to change security settings")


def security_settings(ctx: VaultContext) -> None:
    auth = ctx.auth
    print(f"\n Auth method: {auth.state.value}   App lock: {'on' if auth.lock_enabled else 'off'}")
    print(f" Biometric sensor: {'available' if auth.biometric.is_available() else 'not available'}")

    print("\n  set_pin        - Set or change the PIN.")
    print("  remove_pin     - Remove the PIN.")
    print("  bio_on         - Enable biometric unlock.")
    print("  bio_off        - Disable biometric unlock.")
    print("  lock_on        - Require authentication when the vault is opened.")
    print("  lock_off       - Open without authentication.")
    print("  remove_auth    - Remove all authentication.")
    choice = input(" > ").strip().lower()

    try:
        if choice in WEAKENING_CHOICES:
            confirm_identity(auth)

        if choice == "set_pin":
            pin = get_pin(f" New PIN ({PIN_MIN_LEN}+ digits): ", confirm=True)
            if pin is None:
                return
            auth.set_pin(pin)
            print(" PIN set.")
        elif choice == "remove_pin":
            auth.remove_pin()
            print(" PIN removed.")
        elif choice == "bio_on":
            auth.enable_biometric()
            print(" Biometric unlock enabled.")
        elif choice == "bio_off":
            auth.disable_biometric()
            print(" Biometric unlock disabled.")
        elif choice == "lock_on":
            auth.set_lock_enabled(True)
            print(" App lock enabled.")
        elif choice == "lock_off":
            auth.set_lock_enabled(False)
            print(" App lock disabled.")
        elif choice == "remove_auth":
            if confirm_word(" Remove all authentication?", "remove"):
                auth.remove_all()
                print(" Authentication removed.")
        elif choice:
            print(" Invalid Choice")
    except AuthenticationFailed as e:
        print(f" {e}")
    except AuthConfigurationError as e:
        print(f" {e}")

    print(f"\n Auth method: {auth.state.value}   App lock: {'on' if auth.lock_enabled else 'off'}")


# ==============================================================
# MAIN
# ==============================================================
def main():
    setup_logging()
    print(f"- SentinelVault {VERSION} -\n")

    try:
        ctx = open_vault()
    except VaultError as e:
        print(f" Cannot open vault: {e}")
        logger.error(f"[{pendulum.now().to_iso8601_string()}] Cannot open vault: {e}\n")
        sys.exit(1)
    if ctx is None:
        sys.exit(1)

    # clears clipboard and drops the key on exit
    atexit.register(clear_clipboard)
    atexit.register(ctx.close)

    if not unlock(ctx):
        print("Goodbye!")
        sys.exit(0)

    choice = ''

    while True:
        if choice != "9":
            time.sleep(.3)

        print("\n--- Main Menu ---")
        print("\n 1) Show Codes    2) Copy Code     3) Add Account   4) Add from URI"
              "\n 5) Show QR       6) Delete        7) Quit          9) More Options")
        choice = input(" > ").strip().lower()
        print()

        try:
            if choice == "1":
                watch_codes(ctx)
            elif choice == "2":
                copy_code(ctx)
            elif choice == "3":
                add_account_manual(ctx)
            elif choice == "4":
                add_account_uri(ctx)
            elif choice == "5":
                show_qr(ctx)
            elif choice == "6":
                delete_account(ctx)

            # == QUIT ===============================================
            elif choice == "7":
                print("Goodbye!")
                sys.exit(0)

            # == OPTIONS ===============================================
            elif choice == "9":
                print(f"  list           - List accounts.")
                print(f"  export         - Export all accounts to an encrypted archive.")
                print(f"  import         - Import accounts from an archive.")
                print(f"  security       - PIN, biometric and app lock settings.")
                print(f"  lock           - Lock the vault now.")
                print(f"  time           - Show the clock offset in use.")

            elif choice == "list":
                list_accounts(ctx)
            elif choice == "export":
                export_accounts(ctx)
            elif choice == "import":
                import_accounts(ctx)
            elif choice == "security":
                security_settings(ctx)
            elif choice == "lock":
                if not ctx.auth.on_foreground():
                    print(" App lock is off. Enable it under 'security'.")
                elif not unlock(ctx):
                    print("Goodbye!")
                    sys.exit(0)
            elif choice == "time":
                print(f" Clock offset: {ctx.time_source.offset_ms} ms")
                print(f" Now: {pendulum.from_timestamp(ctx.time_source.current_epoch_seconds()).in_timezone('local').format(DT_FORMAT)}")
            else:
                print("Invalid Choice")

        except DeviceKeyUnavailable as e:
            print(f" Device key error: {e}")
            logger.error(f"[{pendulum.now().to_iso8601_string()}] {e}\n")
            sys.exit(1)
        except VaultError as e:
            print(f" Error: {e}")


if __name__ == "__main__":
    main()
