"""
hubsync/paths.py -- Path resolution for user data.

Uses platformdirs so backups and the optional settings file land in the
platform-appropriate per-user directory.
"""

from __future__ import annotations

import os

from platformdirs import user_config_dir, user_data_dir

_APP_NAME = "ApproVideoHub"
_APP_AUTHOR = "ApproVideo"


def get_user_data_dir() -> str:
    """Return the platform-appropriate user data directory."""
    path = user_data_dir(_APP_NAME, _APP_AUTHOR)
    os.makedirs(path, exist_ok=True)
    return path


def get_backup_dir() -> str:
    """Return the default directory for catalog backups."""
    return os.path.join(get_user_data_dir(), "backups")


def get_default_settings_path() -> str:
    """Return the default location of ``settings.json``."""
    return os.path.join(user_config_dir(_APP_NAME, _APP_AUTHOR), "settings.json")
