from __future__ import annotations

from pathlib import Path

import pytest

from winprovision.app_list import (
    AppEntry,
    ConfigFileError,
    load_app_list,
    load_winget_list,
    parse_app_list,
    parse_winget_list,
)


def test_parse_app_list_skips_comments_and_bad_lines() -> None:
    warnings: list[str] = []
    lines = [
        "# name | url | type | args",
        "",
        "7-Zip | https://example.com/7z.exe | exe | /S",
        "  Node|https://example.com/node.msi|MSI|/qn /norestart  ",
        "Broken | https://example.com/x.exe | exe",
        "NoUrl |  | exe | /S",
        "Zip | https://example.com/x.zip | zip | ",
        "Plain | https://example.com/p.exe | .exe | ",
    ]
    entries = parse_app_list(lines, warnings.append)
    assert entries == [
        AppEntry("7-Zip", "https://example.com/7z.exe", "exe", "/S"),
        AppEntry("Node", "https://example.com/node.msi", "msi", "/qn /norestart"),
        AppEntry("Plain", "https://example.com/p.exe", "exe", ""),
    ]
    assert len(warnings) == 3
    assert all(warning.startswith("[WARN]") for warning in warnings)
    assert "line 5" in warnings[0]


def test_parse_winget_list_strips_comments_and_duplicates() -> None:
    warnings: list[str] = []
    lines = [
        "# editors",
        "Microsoft.VisualStudioCode",
        "Git.Git   # version control",
        "git.git",
        "bad id",
        "   ",
        "Mozilla.Firefox",
    ]
    assert parse_winget_list(lines, warnings.append) == [
        "Microsoft.VisualStudioCode",
        "Git.Git",
        "Mozilla.Firefox",
    ]
    assert warnings == ["[WARN] line 5: invalid package id 'bad id'; skipped"]


def test_load_lists_from_files(tmp_path: Path) -> None:
    apps = tmp_path / "apps.txt"
    apps.write_text("\ufeffVLC|https://example.com/vlc.exe|exe|/S\n", encoding="utf-8")
    winget = tmp_path / "winget.txt"
    winget.write_text("Git.Git\n", encoding="utf-8")
    assert load_app_list(apps) == [AppEntry("VLC", "https://example.com/vlc.exe", "exe", "/S")]
    assert load_winget_list(winget) == ["Git.Git"]


def test_missing_list_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(ConfigFileError):
        load_app_list(tmp_path / "apps.txt")
    with pytest.raises(ConfigFileError):
        load_winget_list(tmp_path / "winget.txt")
