# config_vault.py
"""
Configuration constants
"""
from pathlib import Path
# ==============================================================
# Vault settings
# ==============================================================
# Software version
VERSION = "1.0.0"

# Default location of all vault files. Runtime objects take explicit paths,
# this is only what the CLI uses when nothing else is given.
DATA_DIR = Path.home() / ".sentinel_vault"

VAULT_FILE_NAME = "accounts_vault.json"
DEVICE_KEY_FILE_NAME = "device.key"
PIN_FILE_NAME = "pin.json"
SETTINGS_FILE_NAME = "settings.json"

# Where exported archives are written and imported archives are looked up
EXPORT_DIR = DATA_DIR / "exports"
IMPORT_DIR = DATA_DIR / "exports"

# ==============================================================
# At-rest encryption (device key)
# ==============================================================
# AES-256 device key length. DO NOT CHANGE
DEVICE_KEY_LEN = 32

# AES-GCM nonce length used as the per-record IV (128 bit). DO NOT CHANGE
IV_LEN = 16

# ==============================================================
# PIN hashing (Argon2id)
# ==============================================================
# Parameters are stored alongside each PIN hash, changing them only
# affects PINs set afterwards.
PIN_ARGON_TIME = 3              # Iterations - controls CPU cost
PIN_ARGON_MEMORY = 64 * 1024    # 64 MiB - controls RAM cost
PIN_ARGON_PARALLELISM = 2
PIN_HASH_LEN = 32
PIN_SALT_LEN = 16
PIN_MIN_LEN = 4

# ==============================================================
# Portable export archive
# ==============================================================
# Changing any of these makes previously exported archives unreadable.
EXPORT_MAGIC = b"SENTINEL_SECURE_EXPORT_1.0"
EXPORT_SALT = b"SentinelAppSecureExport"
EXPORT_PBKDF2_ITERATIONS = 10_000
EXPORT_KEY_LEN = 32
EXPORT_IV_LEN = 16
EXPORT_FILE_SUFFIX = ".sav"

# Number of words in a generated export passphrase
PASSPHRASE_WORDS = 16

# ==============================================================
# TOTP defaults
# ==============================================================
DEFAULT_ALGORITHM = "SHA1"
DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30

# ==============================================================
# Time synchronization
# ==============================================================
TIME_SYNC_ENABLED = True
TIME_SYNC_URL = "https://www.google.com"
TIME_SYNC_TIMEOUT = 3           # Seconds, single attempt only

# Code countdown polling interval in seconds
TICK_INTERVAL = 1.0

# ==============================================================
# Clipboard security
# ==============================================================
CLIPBOARD_TIMEOUT = 30          # Seconds before auto-clear

# ==============================================================
# Logging
# ==============================================================
LOG_FILE_NAME = "error.log"
LOG_LEVEL = "WARNING"

# ==============================================================
# Display & formatting
# ==============================================================
UTF8 = "utf-8"
DT_FORMAT = "MMM D, YYYY hh:mm:ss A"
DT_FORMAT_EXPORT = 'YYYY_MM_DD_HH_mm_ss'
CLEAR_SCREEN = True

# length of visible name when displaying accounts
ISSUER_LEN = 15
ACCOUNT_LEN = 22

# separator
SEP_LG = "="*50
SEP_SM = "-"*50

# ==============================================================
# Optional: local overrides
# Local configuration file overrides standard config values

# ==============================================================
try:
    from sentinel_vault.config.config_local import *
except ImportError:
    pass  # No local config - use defaults above
