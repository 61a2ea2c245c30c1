"""Parsers for the line-oriented application lists."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

INSTALLER_TYPES = ("exe", "msi")
APP_LIST_FIELDS = 4

WarnCallback = Callable[[str], None]


class ConfigFileError(RuntimeError):
    pass


@dataclass(frozen=True)
class AppEntry:
    name: str
    url: str
    installer_type: str
    args: str = ""


def _ignore(_: str) -> None:
    return None


def _content_lines(lines: Iterable[str]) -> Iterable[tuple[int, str]]:
    for number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        yield number, line


def parse_app_list(lines: Iterable[str], warn: WarnCallback | None = None) -> list[AppEntry]:
    warn = warn or _ignore
    entries: list[AppEntry] = []
    for number, line in _content_lines(lines):
        parts = [part.strip() for part in line.split("|")]
        if len(parts) != APP_LIST_FIELDS:
            warn(f"[WARN] line {number}: expected {APP_LIST_FIELDS} fields, got {len(parts)}; skipped")
            continue
        name, url, installer_type, args = parts
        installer_type = installer_type.lower().lstrip(".")
        if not name or not url:
            warn(f"[WARN] line {number}: name and url are required; skipped")
            continue
        if installer_type not in INSTALLER_TYPES:
            warn(f"[WARN] line {number}: unknown installer type '{installer_type}' for {name}; skipped")
            continue
        entries.append(AppEntry(name, url, installer_type, args))
    return entries


def parse_winget_list(lines: Iterable[str], warn: WarnCallback | None = None) -> list[str]:
    warn = warn or _ignore
    ids: list[str] = []
    seen: set[str] = set()
    for number, line in _content_lines(lines):
        package_id = line.split("#", 1)[0].strip()
        if not package_id:
            continue
        if any(char.isspace() for char in package_id):
            warn(f"[WARN] line {number}: invalid package id '{package_id}'; skipped")
            continue
        key = package_id.lower()
        if key in seen:
            continue
        seen.add(key)
        ids.append(package_id)
    return ids


def _read_required(path: Path) -> list[str]:
    if not path.is_file():
        raise ConfigFileError(f"Required list not found: {path}")
    return path.read_text(encoding="utf-8-sig").splitlines()


def load_app_list(path: Path, warn: WarnCallback | None = None) -> list[AppEntry]:
    return parse_app_list(_read_required(Path(path)), warn)


def load_winget_list(path: Path, warn: WarnCallback | None = None) -> list[str]:
    return parse_winget_list(_read_required(Path(path)), warn)
