"""Copy personal configuration from the cloud setup folder into place."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping

from services.file_utils import copy_file, copy_tree
from services.system_config import ApplyStepResult, CommandRunner, SubprocessRunner
from winprovision.constants import CloudLayout
from winprovision.paths import local_appdata, user_profile

TERMINAL_PACKAGE = "Microsoft.WindowsTerminal_8wekyb3d8bbwe"
SSH_PUBLIC_FILES = {"known_hosts", "known_hosts.old", "config", "authorized_keys"}

STEP_TERMINAL = "Windows Terminal"
STEP_SSH = "SSH Keys"
STEP_EDGE = "Edge Profile"
STEP_GIT = "Git Config"


@dataclass(frozen=True)
class ConfigCopyItem:
    name: str
    source: Path
    destination: Path


def build_copy_items(config_root: Path, environ: Mapping[str, str] | None = None) -> list[ConfigCopyItem]:
    home = user_profile(environ)
    local = local_appdata(environ)
    return [
        ConfigCopyItem(
            STEP_TERMINAL,
            config_root / "WindowsTerminal" / "settings.json",
            local / "Packages" / TERMINAL_PACKAGE / "LocalState" / "settings.json",
        ),
        ConfigCopyItem(STEP_SSH, config_root / "ssh", home / ".ssh"),
        ConfigCopyItem(
            STEP_EDGE,
            config_root / "Edge" / "Default",
            local / "Microsoft" / "Edge" / "User Data" / "Default",
        ),
        ConfigCopyItem(STEP_GIT, config_root / "git" / ".gitconfig", home / ".gitconfig"),
    ]


class PersonalConfigService:
    def __init__(
        self,
        layout: CloudLayout,
        *,
        cloud_root: Path | None,
        backup_existing: bool = True,
        command_runner: CommandRunner | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._layout = layout
        self._cloud_root = Path(cloud_root) if cloud_root else None
        self._backup_existing = backup_existing
        self._runner = command_runner or SubprocessRunner()
        self._environ = os.environ if environ is None else environ
        self._handlers: dict[str, Callable[[ConfigCopyItem], ApplyStepResult]] = {
            STEP_TERMINAL: self._copy_single_file,
            STEP_SSH: self._copy_ssh_keys,
            STEP_EDGE: self._copy_edge_profile,
            STEP_GIT: self._copy_single_file,
        }

    def items(self) -> list[ConfigCopyItem]:
        if self._cloud_root is None:
            return []
        return build_copy_items(self._cloud_root / self._layout.config_dir, self._environ)

    def available_steps(self) -> list[str]:
        return list(self._handlers)

    def apply_with_results(self, selected: Iterable[str] | None = None) -> list[ApplyStepResult]:
        if self._cloud_root is None:
            return [ApplyStepResult(name, False, "Cloud setup folder not configured") for name in self._filter(selected)]
        wanted = set(self._filter(selected))
        results: list[ApplyStepResult] = []
        for item in self.items():
            if item.name not in wanted:
                continue
            if not item.source.exists():
                results.append(ApplyStepResult(item.name, False, f"source not found: {item.source}"))
                continue
            try:
                results.append(self._handlers[item.name](item))
            except Exception as exc:  # surfaced via the log callback
                results.append(ApplyStepResult(item.name, False, str(exc)))
        return results

    def _filter(self, selected: Iterable[str] | None) -> list[str]:
        if selected is None:
            return self.available_steps()
        wanted = {name.lower() for name in selected}
        return [name for name in self._handlers if name.lower() in wanted]

    def _copy_single_file(self, item: ConfigCopyItem) -> ApplyStepResult:
        backup = copy_file(item.source, item.destination, backup_existing=self._backup_existing)
        detail = f"copied to {item.destination}"
        if backup:
            detail = f"{detail}; previous file kept as {backup.name}"
        return ApplyStepResult(item.name, True, detail)

    def _copy_ssh_keys(self, item: ConfigCopyItem) -> ApplyStepResult:
        user = self._environ.get("USERNAME") or os.environ.get("USERNAME") or "%USERNAME%"
        copied: list[str] = []
        failures: list[str] = []
        for source in sorted(item.source.iterdir()):
            if not source.is_file():
                continue
            destination = item.destination / source.name
            copy_file(source, destination, backup_existing=self._backup_existing)
            copied.append(source.name)
            if not _is_private_key(source):
                continue
            completed = self._runner.run(["icacls", str(destination), "/inheritance:r", "/grant:r", f"{user}:F"])
            if completed.returncode != 0:
                failures.append(f"{source.name} (icacls exit={completed.returncode})")
        detail = f"copied {len(copied)} file(s) to {item.destination}"
        if failures:
            detail = f"{detail}; permissions not restricted: {', '.join(failures)}"
        return ApplyStepResult(item.name, not failures, detail)

    def _copy_edge_profile(self, item: ConfigCopyItem) -> ApplyStepResult:
        # Edge keeps the profile databases locked while running.
        self._runner.run(["taskkill", "/F", "/IM", "msedge.exe"])
        count = copy_tree(item.source, item.destination)
        return ApplyStepResult(item.name, True, f"copied {count} file(s) to {item.destination}")


def _is_private_key(path: Path) -> bool:
    return path.suffix.lower() != ".pub" and path.name.lower() not in SSH_PUBLIC_FILES
