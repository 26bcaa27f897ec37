import os
from pathlib import Path

"""Global constants and path definitions for vrepo.

This module defines the filesystem layout (adhering to XDG standards where
applicable), the per-repository file names and the fixed arguments handed to
the external git, rsync and npm executables.
"""

# --- Identity ---
APP_NAME = "vrepo"
"""str: The human-readable application name."""

VERSION = "1.0.0"
"""str: The application version."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "vrepo"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "vrepo.log"
"""Path: The file path for the rotating log."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/vrepo"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

REPO_CONFIG_NAME = ".vrepo"
"""str: The per-repository configuration file name."""

GITIGNORE_NAME = ".gitignore"
"""str: The ignore-pattern file read once per repository."""

NPM_CONFIG_NAME = "package.json"
"""str: The npm package manifest name."""

README_NAME = "README.md"
"""str: The readme file rewritten during pushes and publishes."""

VERSION_EXPORT_NAME = ".version.js"
"""str: The default file name of the exported package version."""

# --- Git / Process Constants ---
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}
"""dict[str, str]: Environment overrides applied to every git invocation."""

DEFAULT_COMMIT_MESSAGE = "Automatic updates"
"""str: The commit message used when pushing."""

HISTORY_RESET_MESSAGE = "Initial Commit"
"""str: The commit message of the squashed root commit."""

HISTORY_TMP_BRANCH = "tmp-branch"
"""str: The orphan branch used while removing the commit history."""

VERSION_TAG = "{{VERSION}}"
"""str: The README placeholder replaced by the live package version."""

RSYNC_FLAGS = ["-azP"]
"""list[str]: Base flags for every rsync transfer."""

DEFAULT_LARGE_FILE_LIMIT = 25
"""int: The default number of entries listed by the large-file scan."""
