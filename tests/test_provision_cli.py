from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pytest

import provision
from provision import Provisioner, main, report, run_menu
from services.installer import OperationResult
from services.system_config import ApplyStepResult, ConfigCheckResult
from winprovision.app_list import AppEntry
from winprovision.user_settings import UserSettings


class FakeInstaller:
    def __init__(self) -> None:
        self.apps: list[AppEntry] = []
        self.packages: list[str] = []

    def install_apps(self, entries: Iterable[AppEntry]) -> list[OperationResult]:
        self.apps = list(entries)
        return [OperationResult(entry.name, "install", True, "Installed") for entry in self.apps]

    def install_winget(self, package_ids: Iterable[str]) -> list[OperationResult]:
        self.packages = list(package_ids)
        results = [OperationResult(pid, "winget", True, "Installed via winget") for pid in self.packages]
        if results:
            results[-1] = OperationResult(results[-1].name, "winget", False, "winget install failed (exit=1)")
        return results


class FakeStepService:
    def __init__(self, steps: list[str]) -> None:
        self.steps = steps
        self.calls: list[list[str] | None] = []

    def available_apply_steps(self) -> list[str]:
        return list(self.steps)

    def apply_with_results(self, selected: Iterable[str] | None = None) -> list[ApplyStepResult]:
        chosen = None if selected is None else list(selected)
        self.calls.append(chosen)
        wanted = {name.lower() for name in (chosen or self.steps)}
        return [ApplyStepResult(name, True, "done") for name in self.steps if name.lower() in wanted]

    def check(self) -> list[ConfigCheckResult]:
        return [
            ConfigCheckResult("Display Scaling", "120", "120", True),
            ConfigCheckResult("Power Plan", "Balanced", "Power saver", False),
        ]


def _cloud(tmp_path: Path) -> Path:
    root = tmp_path / "Setup"
    root.mkdir()
    (root / "apps.txt").write_text("# apps\nVLC|https://example.com/vlc.exe|exe|/S\nbroken line\n", encoding="utf-8")
    (root / "winget.txt").write_text("Git.Git\nMozilla.Firefox\n", encoding="utf-8")
    return root


def _provisioner(tmp_path: Path, messages: list[str], *, admin: bool = True) -> tuple[Provisioner, FakeInstaller, FakeStepService]:
    installer = FakeInstaller()
    system = FakeStepService(["Display Scaling", "Lock Screen", "Power"])
    provisioner = Provisioner(
        UserSettings(),
        messages.append,
        cloud_root=_cloud(tmp_path),
        installer=installer,  # type: ignore[arg-type]
        personal_config=FakeStepService(["Git Config"]),  # type: ignore[arg-type]
        system_config=system,  # type: ignore[arg-type]
        admin_check=lambda: admin,
    )
    return provisioner, installer, system


def test_report_logs_each_result() -> None:
    messages: list[str] = []
    ok = report(
        [
            OperationResult("VLC", "install", True, "Installed"),
            ApplyStepResult("Power", False, "exit=1"),
            ApplyStepResult("Wallpaper", True),
        ],
        messages.append,
    )
    assert not ok
    assert messages == ["[OK] VLC - Installed", "[FAILED] Power - exit=1", "[OK] Wallpaper"]


def test_install_stages_use_cloud_lists(tmp_path: Path) -> None:
    messages: list[str] = []
    provisioner, installer, _ = _provisioner(tmp_path, messages)

    assert provisioner.install_apps()
    assert [entry.name for entry in installer.apps] == ["VLC"]
    assert any(message.startswith("[WARN] line 3") for message in messages)

    assert not provisioner.install_winget()
    assert installer.packages == ["Git.Git", "Mozilla.Firefox"]
    assert "[FAILED] Mozilla.Firefox - winget install failed (exit=1)" in messages


def test_apply_tweaks_warns_about_unknown_and_elevation(tmp_path: Path) -> None:
    messages: list[str] = []
    provisioner, _, system = _provisioner(tmp_path, messages, admin=False)

    assert provisioner.apply_tweaks(["lock screen", "Teleport"])

    assert "[WARN] Unknown tweak 'Teleport' ignored" in messages
    assert "[WARN] Not elevated; these steps will likely fail: lock screen" in messages
    assert system.calls == [["lock screen", "Teleport"]]


def test_check_tweaks_reports_differences(tmp_path: Path) -> None:
    messages: list[str] = []
    provisioner, _, _ = _provisioner(tmp_path, messages)
    assert not provisioner.check_tweaks()
    assert "[DIFF] Power Plan: Power saver (target: Balanced)" in messages


def test_run_all_runs_every_stage(tmp_path: Path) -> None:
    messages: list[str] = []
    provisioner, installer, system = _provisioner(tmp_path, messages)
    assert not provisioner.run_all()
    assert installer.apps and installer.packages
    assert system.calls == [["Display Scaling", "Lock Screen", "Power"]]
    assert "[OK] Git Config - done" in messages


def test_run_menu_dispatches_by_number_and_name() -> None:
    calls: list[str] = []
    output: list[str] = []
    inputs = iter(["1", "Beta", "7", "boom", "q"])

    def explode() -> None:
        raise RuntimeError("kaboom")

    actions = {"alpha": lambda: calls.append("alpha"), "beta": lambda: calls.append("beta"), "boom": explode}
    run_menu(actions, read=lambda _prompt: next(inputs), write=output.append)

    assert calls == ["alpha", "beta"]
    assert "[WARN] Unknown option: 7" in output
    assert "[ERROR] boom: kaboom" in output
    assert "  1) alpha" in output


def test_run_menu_stops_on_end_of_input() -> None:
    def read(_prompt: str) -> str:
        raise EOFError

    output: list[str] = []
    run_menu({"alpha": lambda: None}, read=read, write=output.append)
    assert "  q) quit" in output


def test_main_returns_config_error_when_lists_missing(tmp_path: Path) -> None:
    empty = tmp_path / "Setup"
    empty.mkdir()
    argv = ["--settings", str(tmp_path / "settings.json"), "--no-log-file", "--cloud-root", str(empty), "apps"]
    assert main(argv) == provision.EXIT_CONFIG_ERROR


def test_main_writes_log_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "run.log"
    argv = [
        "--settings",
        str(tmp_path / "settings.json"),
        "--log-file",
        str(log_file),
        "--cloud-root",
        str(tmp_path / "missing"),
        "winget",
    ]
    assert main(argv) == provision.EXIT_CONFIG_ERROR
    assert "Required list not found" in log_file.read_text(encoding="utf-8")


def test_main_ignores_mistyped_settings_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("OneDrive", "OneDriveConsumer", "OneDriveCommercial"):
        monkeypatch.delenv(name, raising=False)
    settings = tmp_path / "settings.json"
    settings.write_text('{"cloud_root": 5, "download_dir": 7}', encoding="utf-8")
    argv = ["--settings", str(settings), "--no-log-file", "apps"]
    assert main(argv) == provision.EXIT_CONFIG_ERROR
