"""Filesystem locations used by the provisioning tools."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from winprovision.constants import CLOUD_SETUP_FOLDER

APP_DIR_NAME = "WinProvision"
ONEDRIVE_VARIABLES = ("OneDrive", "OneDriveConsumer", "OneDriveCommercial")


def get_config_directory(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    appdata = env.get("APPDATA")
    if appdata:
        return Path(appdata) / APP_DIR_NAME
    return Path.home() / ".config" / APP_DIR_NAME.lower()


def get_log_directory(environ: Mapping[str, str] | None = None) -> Path:
    return get_config_directory(environ) / "logs"


def resolve_cloud_root(
    explicit: str | Path | None = None,
    configured: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path | None:
    """Pick the cloud-synced setup folder.

    An explicit path (CLI option) wins, then the saved user setting, then the
    first OneDrive variable that is set, joined with the setup folder name.
    """
    if explicit:
        return Path(explicit)
    if configured and configured.strip():
        return Path(configured.strip())
    env = os.environ if environ is None else environ
    for name in ONEDRIVE_VARIABLES:
        value = env.get(name)
        if value:
            return Path(value) / CLOUD_SETUP_FOLDER
    return None


def user_profile(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    profile = env.get("USERPROFILE")
    return Path(profile) if profile else Path.home()


def local_appdata(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    value = env.get("LOCALAPPDATA")
    if value:
        return Path(value)
    return user_profile(env) / "AppData" / "Local"


def program_data(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    return Path(env.get("ProgramData") or r"C:\ProgramData")
