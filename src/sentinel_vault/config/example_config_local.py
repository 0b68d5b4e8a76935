# Local configuration file overrides standard config values - never commit this file!
# Used for changing user defaults
from pathlib import Path

DATA_DIR = Path.home() / "Documents" / "sentinel"
EXPORT_DIR = DATA_DIR / "exports"
IMPORT_DIR = Path.home() / "Downloads"
TIME_SYNC_ENABLED = False
CLIPBOARD_TIMEOUT = 20
LOG_LEVEL = "INFO"
CLEAR_SCREEN = False

# Rename this file to config_local.py to enable it
