from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Sequence

from services.personal_config import (
    STEP_EDGE,
    STEP_GIT,
    STEP_SSH,
    STEP_TERMINAL,
    TERMINAL_PACKAGE,
    PersonalConfigService,
)
from winprovision.constants import IMMUTABLE_CONFIG


class FakeRunner:
    def __init__(self, returncode: int = 0) -> None:
        self.commands: list[tuple[str, ...]] = []
        self.returncode = returncode

    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:
        self.commands.append(tuple(command))
        return subprocess.CompletedProcess(command, self.returncode, "", "")


def _environ(tmp_path: Path) -> dict[str, str]:
    return {
        "USERPROFILE": str(tmp_path / "home"),
        "LOCALAPPDATA": str(tmp_path / "home" / "AppData" / "Local"),
        "USERNAME": "me",
    }


def _cloud(tmp_path: Path) -> Path:
    root = tmp_path / "OneDrive" / "Setup"
    config = root / "Config"
    (config / "WindowsTerminal").mkdir(parents=True)
    (config / "WindowsTerminal" / "settings.json").write_text('{"theme": "dark"}')
    (config / "ssh").mkdir()
    (config / "ssh" / "id_ed25519").write_text("PRIVATE")
    (config / "ssh" / "id_ed25519.pub").write_text("PUBLIC")
    (config / "ssh" / "known_hosts").write_text("github.com ssh-ed25519 AAAA")
    (config / "git").mkdir()
    (config / "git" / ".gitconfig").write_text("[user]\n\tname = Me\n")
    return root


def test_copies_files_and_reports_missing_edge_profile(tmp_path: Path) -> None:
    runner = FakeRunner()
    environ = _environ(tmp_path)
    service = PersonalConfigService(
        IMMUTABLE_CONFIG.cloud,
        cloud_root=_cloud(tmp_path),
        command_runner=runner,
        environ=environ,
    )

    results = {result.name: result for result in service.apply_with_results()}

    home = tmp_path / "home"
    terminal = home / "AppData" / "Local" / "Packages" / TERMINAL_PACKAGE / "LocalState" / "settings.json"
    assert results[STEP_TERMINAL].success
    assert terminal.read_text() == '{"theme": "dark"}'
    assert results[STEP_SSH].success
    assert sorted(p.name for p in (home / ".ssh").iterdir()) == ["id_ed25519", "id_ed25519.pub", "known_hosts"]
    assert results[STEP_GIT].success
    assert (home / ".gitconfig").read_text().startswith("[user]")
    assert not results[STEP_EDGE].success
    assert "source not found" in results[STEP_EDGE].detail

    icacls = [cmd for cmd in runner.commands if cmd[0] == "icacls"]
    assert icacls == [("icacls", str(home / ".ssh" / "id_ed25519"), "/inheritance:r", "/grant:r", "me:F")]


def test_existing_destination_is_kept_as_numbered_copy(tmp_path: Path) -> None:
    environ = _environ(tmp_path)
    home = tmp_path / "home"
    home.mkdir()
    (home / ".gitconfig").write_text("[user]\n\tname = Old\n")
    service = PersonalConfigService(
        IMMUTABLE_CONFIG.cloud,
        cloud_root=_cloud(tmp_path),
        command_runner=FakeRunner(),
        environ=environ,
    )

    [result] = service.apply_with_results([STEP_GIT])

    assert result.success
    assert "previous file kept as .gitconfig (1)" in result.detail
    assert (home / ".gitconfig (1)").read_text() == "[user]\n\tname = Old\n"
    assert "name = Me" in (home / ".gitconfig").read_text()


def test_edge_profile_is_copied_after_closing_edge(tmp_path: Path) -> None:
    runner = FakeRunner()
    cloud = _cloud(tmp_path)
    profile = cloud / "Config" / "Edge" / "Default"
    profile.mkdir(parents=True)
    (profile / "Bookmarks").write_text("{}")
    (profile / "Preferences").write_text("{}")
    service = PersonalConfigService(
        IMMUTABLE_CONFIG.cloud,
        cloud_root=cloud,
        command_runner=runner,
        environ=_environ(tmp_path),
    )

    [result] = service.apply_with_results(["edge profile"])

    target = tmp_path / "home" / "AppData" / "Local" / "Microsoft" / "Edge" / "User Data" / "Default"
    assert result.success
    assert (target / "Bookmarks").exists()
    assert ("taskkill", "/F", "/IM", "msedge.exe") in runner.commands


def test_icacls_failure_marks_ssh_step_failed(tmp_path: Path) -> None:
    service = PersonalConfigService(
        IMMUTABLE_CONFIG.cloud,
        cloud_root=_cloud(tmp_path),
        command_runner=FakeRunner(returncode=5),
        environ=_environ(tmp_path),
    )
    [result] = service.apply_with_results([STEP_SSH])
    assert not result.success
    assert "id_ed25519 (icacls exit=5)" in result.detail


def test_without_cloud_root_every_step_fails(tmp_path: Path) -> None:
    service = PersonalConfigService(
        IMMUTABLE_CONFIG.cloud,
        cloud_root=None,
        command_runner=FakeRunner(),
        environ=_environ(tmp_path),
    )
    results = service.apply_with_results()
    assert [r.name for r in results] == [STEP_TERMINAL, STEP_SSH, STEP_EDGE, STEP_GIT]
    assert not any(r.success for r in results)
