"""
hubsync/config.py -- Settings for talking to the content store.

Settings come from three layers, later layers winning:

    1. Field defaults on :class:`SyncSettings`
    2. An optional JSON settings file
    3. ``HUBSYNC_*`` environment variables

Usage::

    from hubsync.config import load_settings

    settings = load_settings()              # default settings.json + env
    settings = load_settings("/etc/hubsync.json")
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hubsync.exceptions import CatalogSyncError
from hubsync.paths import get_backup_dir, get_default_settings_path
from hubsync.utils import safe_read_json

logger = logging.getLogger(__name__)

ENV_PREFIX = "HUBSYNC_"


class SyncSettings(BaseModel):
    """Connection and housekeeping settings."""

    model_config = ConfigDict(extra="ignore")

    server_url: str = "https://parseapi.back4app.com"
    application_id: str = ""
    rest_api_key: str = ""
    master_key: Optional[str] = None
    request_timeout: float = Field(default=15.0, gt=0)
    poll_interval: float = Field(default=10.0, gt=0)
    query_limit: int = Field(default=1000, ge=1)
    backup_dir: str = Field(default_factory=get_backup_dir)
    keep_backups: int = Field(default=10, ge=1)


def _env_overrides(environ) -> dict[str, Any]:
    """Collect ``HUBSYNC_<FIELD>`` variables that name a settings field."""
    overrides: dict[str, Any] = {}
    for field_name in SyncSettings.model_fields:
        value = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
        if value is not None and value != "":
            overrides[field_name] = value
    return overrides


def load_settings(path: str | None = None, environ=None) -> SyncSettings:
    """Build :class:`SyncSettings` from a JSON file and the environment.

    Parameters
    ----------
    path : str, optional
        Settings file.  Defaults to the per-user ``settings.json``; a missing
        file is not an error.
    environ : mapping, optional
        Environment to read overrides from (defaults to ``os.environ``).

    Raises
    ------
    CatalogSyncError
        If the combined values do not validate.
    """
    environ = os.environ if environ is None else environ
    settings_path = path or get_default_settings_path()

    raw = safe_read_json(settings_path, default={})
    if not isinstance(raw, dict):
        logger.warning("Ignoring settings file %s: top level is not an object", settings_path)
        raw = {}

    merged = {**raw, **_env_overrides(environ)}
    try:
        return SyncSettings.model_validate(merged)
    except ValidationError as exc:
        raise CatalogSyncError(f"Invalid settings: {exc}") from exc
