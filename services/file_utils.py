"""File placement helpers shared by the installer and config services."""
from __future__ import annotations

import filecmp
import shutil
from pathlib import Path


def unique_path(path: Path | str) -> Path:
    """Return ``path`` or the first free ``name (n).ext`` sibling, n counting from 1.

    Not safe against another process creating the same name in between.
    """
    candidate = Path(path)
    if not candidate.exists():
        return candidate
    stem = candidate.stem
    suffix = candidate.suffix
    counter = 1
    while True:
        candidate = candidate.with_name(f"{stem} ({counter}){suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


def copy_file(source: Path, destination: Path, *, backup_existing: bool = False) -> Path | None:
    """Copy a file into place. Returns the backup path when one was made."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    backup: Path | None = None
    if backup_existing and destination.is_file() and not filecmp.cmp(source, destination, shallow=False):
        backup = unique_path(destination)
        shutil.move(str(destination), backup)
    shutil.copy2(source, destination)
    return backup


def copy_tree(source: Path, destination: Path) -> int:
    destination.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, destination, dirs_exist_ok=True)
    return sum(1 for item in source.rglob("*") if item.is_file())


def place_file(source: Path, directory: Path) -> Path:
    """Copy ``source`` into ``directory`` without clobbering a different file."""
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / source.name
    if target.is_file() and filecmp.cmp(source, target, shallow=False):
        return target
    target = unique_path(target)
    shutil.copy2(source, target)
    return target
