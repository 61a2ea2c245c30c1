"""User-editable settings persisted next to the logs."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from winprovision.paths import get_config_directory

SETTINGS_FILE_NAME = "settings.json"


@dataclass
class UserSettings:
    cloud_root: str = ""
    download_dir: str = ""
    backup_existing: bool = True


class SettingsStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = Path(path) if path else get_config_directory() / SETTINGS_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> UserSettings:
        if not self._path.exists():
            return UserSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return UserSettings()
        if not isinstance(data, dict):
            return UserSettings()
        defaults = UserSettings()
        values = {}
        for field in fields(UserSettings):
            value = data.get(field.name)
            # A value of the wrong JSON type keeps the default.
            if type(value) is type(getattr(defaults, field.name)):
                values[field.name] = value
        return UserSettings(**values)

    def save(self, settings: UserSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
