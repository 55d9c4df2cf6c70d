"""
Configuration for the bulk PR tool.

Built-in defaults live here as module constants. A YAML file (by default
~/.config/gh-bulk-pr/config.yaml) may override a few of them; command-line
flags override both.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from bulk_pr import __version__
from bulk_pr.errors import ConfigurationError

logger = logging.getLogger(__name__)


# ============================================================================
# DEFAULTS
# ============================================================================

# Where repositories are cloned: <base>/<owner>/<repo>
DEFAULT_CLONE_BASE_DIR = os.path.join(os.path.expanduser("~"), ".local", "share", "gh-bulk-pr")

# YAML file with user overrides (see CONFIG_FILE_KEYS)
DEFAULT_CONFIG_FILE = os.path.join(os.path.expanduser("~"), ".config", "gh-bulk-pr", "config.yaml")

DEFAULT_HOST = "github.com"

# Every PR opened by this tool gets this title prefix
PR_TITLE_PREFIX = "[bulk pr] "

# Remote name the fork is added under in a fresh clone
FORK_REMOTE = "fork"
UPSTREAM_REMOTE = "origin"

# A fork created less than FORK_FRESH_SECONDS ago may not be fetchable yet;
# wait FORK_WAIT_SECONDS before adding it as a remote.
FORK_FRESH_SECONDS = 30
FORK_WAIT_SECONDS = 5

# Placeholder commit message when neither --commit-msg nor --commit-msg-file is given
NO_COMMIT_MSG = "<no commit msg>"

# Used for the footer link in every PR body
PROJECT_NAME = "gh bulk-pr"
PROJECT_URL = "https://github.com/groupon/gh-bulk-pr"
PROJECT_VERSION = __version__

# Keys accepted in the YAML config file
CONFIG_FILE_KEYS = ("clone_base_dir", "host", "verify_ssl")


# ============================================================================
# RUN CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class BulkRunConfig:
    """Options for one invocation, parsed once and shared by every repository."""

    cmd_line: str
    after_commit_cmd_line: Optional[str] = None
    commit: bool = True
    title: Optional[str] = None
    branch: Optional[str] = None
    commit_msg: Optional[str] = None
    commit_msg_file: Optional[str] = None
    pr_msg_file: Optional[str] = None
    clone_base_dir: str = DEFAULT_CLONE_BASE_DIR
    clone: bool = True
    dry_run: bool = False
    json: bool = False
    buffer: Optional[List[str]] = field(default=None, compare=False)
    host: Optional[str] = None
    verify_ssl: bool = True

    def validate(self) -> None:
        """
        Reject option combinations that can never produce a PR.

        Raises:
            ConfigurationError: on the first problem found
        """
        if not self.cmd_line:
            raise ConfigurationError("Missing required argument --cmd-line")

        has_msg = bool(self.commit_msg)
        has_msg_file = bool(self.commit_msg_file)
        if self.commit:
            if has_msg == has_msg_file:
                raise ConfigurationError("Must specify --commit-msg or --commit-msg-file, not both")
        else:
            if has_msg or has_msg_file:
                raise ConfigurationError("Should not supply a commit msg if not committing")
            if not self.title:
                raise ConfigurationError("Must supply --title if not committing")


# ============================================================================
# CONFIG FILE
# ============================================================================

def load_config_file(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load user overrides from a YAML config file.

    Args:
        path: Explicit config path; when None the default location is used
              and a missing file is not an error.

    Returns:
        Mapping with only the recognised keys
    """
    explicit = path is not None
    config_path = Path(os.path.expanduser(path or DEFAULT_CONFIG_FILE))

    if not config_path.exists():
        if explicit:
            raise ConfigurationError(f"Config file not found: {config_path}")
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    settings = {}
    for key, value in data.items():
        if key in CONFIG_FILE_KEYS:
            settings[key] = value
        else:
            logger.warning(f"Ignoring unknown key '{key}' in {config_path}")

    if "clone_base_dir" in settings:
        settings["clone_base_dir"] = os.path.expanduser(str(settings["clone_base_dir"]))
    if "verify_ssl" in settings and not isinstance(settings["verify_ssl"], bool):
        raise ConfigurationError(
            f"verify_ssl in {config_path} must be true or false, got {settings['verify_ssl']!r}"
        )

    logger.debug(f"Loaded settings from {config_path}: {sorted(settings)}")
    return settings
