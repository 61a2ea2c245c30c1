"""Application installation from the app list and the winget list."""
from __future__ import annotations

import os
import re
import shutil
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence

from services.file_utils import unique_path
from services.system_config import CommandRunner, SubprocessRunner
from winprovision.app_list import AppEntry

SUCCESS_EXIT_CODES = {0}
REBOOT_EXIT_CODES = {1641, 3010}

Downloader = Callable[[str, Path], None]


@dataclass
class CommandExecutionResult:
    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class WingetError(RuntimeError):
    pass


class WingetClient:
    """Thin wrapper around the winget CLI."""

    def __init__(self, executable: str | None = None, *, command_runner: CommandRunner | None = None):
        self._runner = command_runner or SubprocessRunner()
        exe_path = executable or shutil.which("winget")
        if not exe_path:
            fallback = self._find_winget_fallback()
            exe_path = str(fallback) if fallback else None
        self._executable = exe_path

    def is_available(self) -> bool:
        return self._executable is not None

    def is_installed(self, package_id: str) -> bool:
        cmd = [self._require_executable(), "list", "--id", package_id, "--exact", "--accept-source-agreements"]
        result = self._run(cmd)
        return result.returncode == 0 and package_id.lower() in result.stdout.lower()

    def install_package(self, package_id: str) -> CommandExecutionResult:
        cmd = [
            self._require_executable(),
            "install",
            "--id",
            package_id,
            "--exact",
            "--silent",
            "--accept-package-agreements",
            "--accept-source-agreements",
        ]
        return self._run(cmd)

    def _require_executable(self) -> str:
        if not self._executable:
            raise WingetError("winget executable not found in PATH")
        return self._executable

    def _run(self, cmd: list[str]) -> CommandExecutionResult:
        completed = self._runner.run(cmd)
        return CommandExecutionResult(cmd, completed.returncode, completed.stdout or "", completed.stderr or "")

    def _find_winget_fallback(self) -> Path | None:
        local_appdata = os.environ.get("LOCALAPPDATA")
        if local_appdata:
            candidate = Path(local_appdata) / "Microsoft" / "WindowsApps" / "winget.exe"
            if candidate.exists():
                return candidate
        program_files = os.environ.get("ProgramFiles")
        if program_files:
            base = Path(program_files) / "WindowsApps"
            try:
                candidates = list(base.glob("Microsoft.DesktopAppInstaller_*_x64__8wekyb3d8bbwe/winget.exe"))
            except OSError:
                candidates = []
            for candidate in candidates:
                if candidate.exists():
                    return candidate
        return None


@dataclass
class OperationResult:
    name: str
    operation: str
    success: bool
    message: str
    stdout: str = ""
    stderr: str = ""


class InstallerService:
    def __init__(
        self,
        *,
        download_dir: Path | str | None = None,
        winget_client: WingetClient | None = None,
        command_runner: CommandRunner | None = None,
        downloader: Downloader | None = None,
    ) -> None:
        self._download_dir = Path(download_dir) if download_dir else Path(tempfile.gettempdir()) / "WinProvision"
        self._runner = command_runner or SubprocessRunner()
        self._winget = winget_client or WingetClient(command_runner=self._runner)
        self._downloader = downloader or _download_file

    @property
    def download_dir(self) -> Path:
        return self._download_dir

    def install_apps(self, entries: Iterable[AppEntry]) -> list[OperationResult]:
        return [self._install_app(entry) for entry in entries]

    def install_winget(self, package_ids: Iterable[str]) -> list[OperationResult]:
        package_ids = list(package_ids)
        if not package_ids:
            return []
        if not self._winget.is_available():
            return [OperationResult(pid, "winget", False, "winget executable not found") for pid in package_ids]
        results: list[OperationResult] = []
        for package_id in package_ids:
            results.append(self._install_winget_package(package_id))
        return results

    def _install_app(self, app: AppEntry) -> OperationResult:
        try:
            installer = self._download(app)
        except Exception as exc:
            return OperationResult(app.name, "install", False, f"Download error: {exc}")
        cmd = self._installer_command(app, installer)
        try:
            completed = self._runner.run(cmd)
        except OSError as exc:
            return OperationResult(app.name, "install", False, f"Launch failed: {exc}")
        code = completed.returncode
        if code in SUCCESS_EXIT_CODES:
            message = "Installed"
        elif code in REBOOT_EXIT_CODES:
            message = f"Installed (reboot required, exit={code})"
        else:
            message = f"Installer failed (exit={code})"
        success = code in SUCCESS_EXIT_CODES or code in REBOOT_EXIT_CODES
        return OperationResult(app.name, "install", success, message, completed.stdout or "", completed.stderr or "")

    def _install_winget_package(self, package_id: str) -> OperationResult:
        try:
            if self._winget.is_installed(package_id):
                return OperationResult(package_id, "winget", True, "Already installed")
            result = self._winget.install_package(package_id)
        except WingetError as exc:
            return OperationResult(package_id, "winget", False, str(exc))
        message = "Installed via winget" if result.succeeded else f"winget install failed (exit={result.returncode})"
        return OperationResult(package_id, "winget", result.succeeded, message, result.stdout, result.stderr)

    def _download(self, app: AppEntry) -> Path:
        self._download_dir.mkdir(parents=True, exist_ok=True)
        destination = unique_path(self._download_dir / f"{_safe_name(app.name)}.{app.installer_type}")
        self._downloader(app.url, destination)
        if not destination.is_file():
            raise FileNotFoundError(f"{destination.name} missing after download")
        return destination

    def _installer_command(self, app: AppEntry, installer: Path) -> str:
        # Raw command line: installers parse their own quoting.
        if app.installer_type == "msi":
            command = f'msiexec /i "{installer}"'
        else:
            command = f'"{installer}"'
        return f"{command} {app.args}" if app.args else command


def _download_file(url: str, destination: Path) -> None:
    request = urllib.request.Request(url, headers={"User-Agent": "Mozilla/5.0"})
    destination.parent.mkdir(parents=True, exist_ok=True)
    temp_path = destination.with_suffix(destination.suffix + ".download")
    try:
        with urllib.request.urlopen(request, timeout=60) as response, temp_path.open("wb") as handle:
            shutil.copyfileobj(response, handle)
        temp_path.replace(destination)
    except urllib.error.URLError as exc:
        temp_path.unlink(missing_ok=True)
        raise RuntimeError(f"Download failed for {url}: {exc}") from exc
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def _safe_name(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_").lower() or "installer"
