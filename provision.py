#!/usr/bin/env python3
"""Provision this Windows machine: applications, personal config and system tweaks."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Mapping, Protocol, Sequence

from services.installer import InstallerService
from services.personal_config import PersonalConfigService
from services.privilege import is_admin, relaunch_as_admin, steps_needing_admin
from services.system_config import ADMIN_STEPS, SystemConfigService
from winprovision.app_list import ConfigFileError, load_app_list, load_winget_list
from winprovision.constants import IMMUTABLE_CONFIG, ImmutableConfig
from winprovision.paths import get_log_directory, resolve_cloud_root
from winprovision.user_settings import SettingsStore, UserSettings

LogCallback = Callable[[str], None]
MenuAction = Callable[[], object]

LOGGER_NAME = "winprovision"
QUIT_WORDS = {"q", "quit", "exit"}
EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG_ERROR = 2


class StepResult(Protocol):
    name: str
    success: bool


def configure_logging(log_file: Path | None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(file_handler)
    return logger


def make_log_callback(logger: logging.Logger) -> LogCallback:
    def log(message: str) -> None:
        if message.startswith(("[ERROR]", "[FAILED]")):
            logger.error(message)
        elif message.startswith("[WARN]"):
            logger.warning(message)
        else:
            logger.info(message)

    return log


def report(results: Iterable[StepResult], log: LogCallback) -> bool:
    all_ok = True
    for result in results:
        detail = getattr(result, "message", None) or getattr(result, "detail", "")
        status = "OK" if result.success else "FAILED"
        suffix = f" - {detail}" if detail else ""
        log(f"[{status}] {result.name}{suffix}")
        all_ok = all_ok and result.success
    return all_ok


class Provisioner:
    """Wires the services together for one run of the CLI or menu."""

    def __init__(
        self,
        settings: UserSettings,
        log: LogCallback,
        *,
        cloud_root: Path | None = None,
        config: ImmutableConfig = IMMUTABLE_CONFIG,
        installer: InstallerService | None = None,
        personal_config: PersonalConfigService | None = None,
        system_config: SystemConfigService | None = None,
        admin_check: Callable[[], bool] = is_admin,
    ) -> None:
        self._settings = settings
        self._log = log
        self._config = config
        self._cloud_root = cloud_root
        self._admin_check = admin_check
        self._installer = installer or InstallerService(download_dir=settings.download_dir or None)
        self._personal = personal_config or PersonalConfigService(
            config.cloud,
            cloud_root=cloud_root,
            backup_existing=settings.backup_existing,
        )
        self._system = system_config
        self._system_factory = lambda: SystemConfigService(
            config.system,
            config.cloud,
            cloud_root=cloud_root,
            backup_existing=settings.backup_existing,
        )

    @property
    def cloud_root(self) -> Path | None:
        return self._cloud_root

    def app_list_path(self) -> Path:
        return self._require_cloud_root() / self._config.cloud.app_list

    def winget_list_path(self) -> Path:
        return self._require_cloud_root() / self._config.cloud.winget_list

    def require_lists(self) -> None:
        for path in (self.app_list_path(), self.winget_list_path()):
            if not path.is_file():
                raise ConfigFileError(f"Required list not found: {path}")

    def install_apps(self) -> bool:
        entries = load_app_list(self.app_list_path(), self._log)
        self._log(f"Installing {len(entries)} application(s) from {self.app_list_path().name}...")
        return report(self._installer.install_apps(entries), self._log)

    def install_winget(self) -> bool:
        package_ids = load_winget_list(self.winget_list_path(), self._log)
        self._log(f"Installing {len(package_ids)} winget package(s)...")
        return report(self._installer.install_winget(package_ids), self._log)

    def copy_config(self, steps: Sequence[str] | None = None) -> bool:
        self._log(f"Copying personal configuration from {self._cloud_root}...")
        return report(self._personal.apply_with_results(steps), self._log)

    def apply_tweaks(self, steps: Sequence[str] | None = None) -> bool:
        service = self._system_service()
        selected = list(steps) if steps else service.available_apply_steps()
        unknown = [step for step in selected if step.lower() not in {s.lower() for s in service.available_apply_steps()}]
        for step in unknown:
            self._log(f"[WARN] Unknown tweak '{step}' ignored")
        pending = steps_needing_admin(selected, ADMIN_STEPS, check=self._admin_check)
        if pending:
            self._log(f"[WARN] Not elevated; these steps will likely fail: {', '.join(pending)}")
        self._log(f"Applying tweaks: {', '.join(s for s in selected if s not in unknown)}")
        return report(service.apply_with_results(selected), self._log)

    def check_tweaks(self) -> bool:
        results = self._system_service().check()
        all_ok = True
        for result in results:
            status = "OK" if result.in_desired_state else "DIFF"
            self._log(f"[{status}] {result.name}: {result.actual} (target: {result.expected})")
            all_ok = all_ok and result.in_desired_state
        return all_ok

    def run_all(self) -> bool:
        self.require_lists()
        outcomes = [
            self.install_apps(),
            self.install_winget(),
            self.copy_config(),
            self.apply_tweaks(),
        ]
        return all(outcomes)

    def menu_actions(self) -> dict[str, MenuAction]:
        return {
            "apps": self.install_apps,
            "winget": self.install_winget,
            "config": self.copy_config,
            "tweaks": self.apply_tweaks,
            "check": self.check_tweaks,
            "all": self.run_all,
        }

    def _system_service(self) -> SystemConfigService:
        if self._system is None:
            self._system = self._system_factory()
        return self._system

    def _require_cloud_root(self) -> Path:
        if self._cloud_root is None:
            raise ConfigFileError("Cloud setup folder not configured; pass --cloud-root or set OneDrive")
        return self._cloud_root


def run_menu(
    actions: Mapping[str, MenuAction],
    *,
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> None:
    names = list(actions)
    while True:
        write("")
        for index, name in enumerate(names, start=1):
            write(f"  {index}) {name}")
        write("  q) quit")
        try:
            choice = read("Select an option: ").strip()
        except EOFError:
            return
        if choice.lower() in QUIT_WORDS:
            return
        name = _match_menu_choice(choice, names)
        if name is None:
            write(f"[WARN] Unknown option: {choice}")
            continue
        try:
            actions[name]()
        except Exception as exc:
            write(f"[ERROR] {name}: {exc}")


def _match_menu_choice(choice: str, names: Sequence[str]) -> str | None:
    if choice.isdigit():
        index = int(choice) - 1
        return names[index] if 0 <= index < len(names) else None
    lowered = choice.lower()
    for name in names:
        if name.lower() == lowered:
            return name
    return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provision this Windows machine.")
    parser.add_argument("--cloud-root", help="Cloud-synced setup folder (defaults to %%OneDrive%%\\Setup)")
    parser.add_argument("--settings", help="Path to settings.json")
    parser.add_argument("--log-file", help="Write the log to this file")
    parser.add_argument("--no-log-file", action="store_true", help="Only log to the console")
    parser.add_argument("--elevate", action="store_true", help="Relaunch elevated before running")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("apps", help="Download and install applications from apps.txt")
    commands.add_parser("winget", help="Install packages listed in winget.txt")
    config = commands.add_parser("config", help="Copy personal configuration into place")
    config.add_argument("--step", action="append", help="Only run the named copy step")
    tweaks = commands.add_parser("tweaks", help="Apply registry, power and personalization tweaks")
    tweaks.add_argument("--step", action="append", help="Only run the named tweak")
    commands.add_parser("check", help="Compare tweak values against the desired state")
    commands.add_parser("all", help="Run every stage in order")
    commands.add_parser("menu", help="Interactive menu")
    commands.add_parser("gui", help="Open the graphical interface")
    return parser


def _default_log_file() -> Path:
    return get_log_directory() / f"provision_{datetime.now():%Y%m%d_%H%M%S}.log"


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.elevate and not is_admin():
        if relaunch_as_admin([arg for arg in sys.argv if arg != "--elevate"]):
            return EXIT_OK
        print("[WARN] Elevation was not granted; continuing unelevated.")

    store = SettingsStore(Path(args.settings) if args.settings else None)
    settings = store.load()
    cloud_root = resolve_cloud_root(args.cloud_root, settings.cloud_root)

    if args.command == "gui":
        from ui.main_window import run_gui

        return run_gui(settings, store, cloud_root)

    log_file = None if args.no_log_file else Path(args.log_file) if args.log_file else _default_log_file()
    log = make_log_callback(configure_logging(log_file))
    provisioner = Provisioner(settings, log, cloud_root=cloud_root)

    try:
        if args.command in {"apps", "winget", "all"}:
            provisioner.require_lists()
        if args.command == "menu":
            run_menu(provisioner.menu_actions(), write=log)
            return EXIT_OK
        handlers: dict[str, Callable[[], bool]] = {
            "apps": provisioner.install_apps,
            "winget": provisioner.install_winget,
            "config": lambda: provisioner.copy_config(args.step),
            "tweaks": lambda: provisioner.apply_tweaks(args.step),
            "check": provisioner.check_tweaks,
            "all": provisioner.run_all,
        }
        ok = handlers[args.command]()
    except ConfigFileError as exc:
        log(f"[ERROR] {exc}")
        return EXIT_CONFIG_ERROR
    return EXIT_OK if ok else EXIT_FAILURES


if __name__ == "__main__":
    sys.exit(main())
