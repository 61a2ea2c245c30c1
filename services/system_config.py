"""Registry, power and personalization tweaks."""
from __future__ import annotations

import csv
import ctypes
import io
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping, Protocol, Sequence

from services.file_utils import copy_file, place_file
from services.night_light import (
    NIGHT_LIGHT_REGISTRY_PATH,
    NIGHT_LIGHT_VALUE_NAME,
    NightLightSchedule,
    decode_varint,
    encode_settings,
)
from winprovision.constants import CloudLayout, FixedSystemConfig
from winprovision.paths import local_appdata, program_data, user_profile

try:  # Windows-only dependency, optional for test doubles
    import winreg  # type: ignore
except ImportError:  # pragma: no cover - not available on Linux runners
    winreg = None  # type: ignore

RegistryValue = str | int | bytes

POWERCFG_GUID_PATTERN = re.compile(r"Power Scheme GUID:\s*([0-9a-fA-F-]{36})\s*\((.*?)\)\s*(\*)?")
KNOWN_POWER_SCHEMES = {
    "SCHEME_BALANCED": "381b4222-f694-41f0-9685-ff5bb260df2e",
    "SCHEME_MIN": "8c5e7fda-e8bf-4a96-9a85-a6e23a8c635c",
    "SCHEME_MAX": "a1841308-3541-4fab-bc81-f71556f20b4a",
}
DESKTOP_PATH = r"HKCU:\Control Panel\Desktop"
INTERNATIONAL_PATH = r"HKCU:\Control Panel\International"
DWM_PATH = r"HKCU:\Software\Microsoft\Windows\DWM"
ACCENT_PATH = r"HKCU:\Software\Microsoft\Windows\CurrentVersion\Explorer\Accent"
PERSONALIZE_PATH = r"HKCU:\Software\Microsoft\Windows\CurrentVersion\Themes\Personalize"
CLIPBOARD_PATH = r"HKCU:\Software\Microsoft\Clipboard"
CLIPBOARD_VALUES = ("EnableClipboardHistory", "EnableCloudClipboard", "CloudClipboardAutomaticUpload")
LOCK_SCREEN_PATH = r"HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\PersonalizationCSP"
ACCOUNT_PICTURE_PATH = r"HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\AccountPicture\Users"
ACCOUNT_PICTURE_SIZES = (32, 40, 48, 96, 192, 208, 240, 424, 448, 1080)
START_MENU_PACKAGE = "Microsoft.Windows.StartMenuExperienceHost_cw5n1h2txyewy"
DEFAULT_DPI = 96
DISM_SUCCESS_CODES = {0, 3010}
SPI_SETDESKWALLPAPER = 0x0014
SPIF_UPDATEINIFILE = 0x01
SPIF_SENDCHANGE = 0x02

STEP_DISPLAY_SCALING = "Display Scaling"
STEP_WALLPAPER = "Wallpaper"
STEP_LOCK_SCREEN = "Lock Screen"
STEP_ACCOUNT_PICTURE = "Account Picture"
STEP_ACCENT_COLOUR = "Accent Colour"
STEP_CLIPBOARD = "Clipboard Sync"
STEP_OPTIONAL_FEATURES = "Optional Features"
STEP_NIGHT_LIGHT = "Night Light"
STEP_START_LAYOUT = "Start Layout"
STEP_DATE_TIME = "Date/Time Formats"
STEP_POWER = "Power"
ADMIN_STEPS = (STEP_LOCK_SCREEN, STEP_ACCOUNT_PICTURE, STEP_OPTIONAL_FEATURES)


@dataclass
class ConfigCheckResult:
    name: str
    expected: str
    actual: str
    in_desired_state: bool


@dataclass
class ApplyStepResult:
    name: str
    success: bool
    detail: str = ""


class CommandRunner(Protocol):
    def run(self, command: Sequence[str] | str) -> subprocess.CompletedProcess[str]:  # pragma: no cover - protocol
        ...


class SubprocessRunner:
    def run(self, command: Sequence[str] | str) -> subprocess.CompletedProcess[str]:
        return subprocess.run(command, capture_output=True, text=True, check=False)


class RegistryAccessor(Protocol):
    def get_value(self, path: str, value_name: str) -> RegistryValue | None:  # pragma: no cover - protocol
        ...

    def set_value(self, path: str, value_name: str, value: RegistryValue) -> None:  # pragma: no cover - protocol
        ...


class WindowsRegistryAccessor:
    """Minimal registry helper backed by winreg."""

    def __init__(self) -> None:
        if winreg is None:
            raise RuntimeError("winreg not available on this platform")

    def get_value(self, path: str, value_name: str) -> RegistryValue | None:
        hive, subkey = self._split_path(path)
        try:
            with winreg.OpenKey(hive, subkey) as key:  # type: ignore[arg-type]
                value, _ = winreg.QueryValueEx(key, value_name)
                return value
        except FileNotFoundError:
            return None

    def set_value(self, path: str, value_name: str, value: RegistryValue) -> None:
        hive, subkey = self._split_path(path)
        if isinstance(value, bytes):
            value_type = winreg.REG_BINARY
        elif isinstance(value, int):
            value_type = winreg.REG_DWORD
        else:
            value_type = winreg.REG_SZ
        with winreg.CreateKeyEx(hive, subkey) as key:  # type: ignore[arg-type]
            winreg.SetValueEx(key, value_name, 0, value_type, value)

    def _split_path(self, path: str) -> tuple[object, str]:
        cleaned = path.replace("/", "\\")
        marker = ":\\"
        if marker not in cleaned:
            raise ValueError(f"Invalid registry path: {path}")
        hive_name, subkey = cleaned.split(marker, 1)
        subkey = subkey.lstrip("\\")
        hive_map = {
            "HKLM": winreg.HKEY_LOCAL_MACHINE,
            "HKCU": winreg.HKEY_CURRENT_USER,
            "HKCR": winreg.HKEY_CLASSES_ROOT,
            "HKU": winreg.HKEY_USERS,
            "HKCC": winreg.HKEY_CURRENT_CONFIG,
        }
        try:
            hive = hive_map[hive_name.upper()]
        except KeyError as exc:  # pragma: no cover - invalid input handled upstream
            raise ValueError(f"Unsupported hive: {hive_name}") from exc
        return hive, subkey


class DesktopRefresher(Protocol):
    def set_wallpaper(self, path: Path) -> bool:  # pragma: no cover - protocol
        ...


class WindowsDesktop:
    def set_wallpaper(self, path: Path) -> bool:
        try:
            user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        except AttributeError:
            return False
        flags = SPIF_UPDATEINIFILE | SPIF_SENDCHANGE
        return bool(user32.SystemParametersInfoW(SPI_SETDESKWALLPAPER, 0, str(path), flags))


def accent_to_dword(color: str) -> int:
    """Convert ``#RRGGBB`` into the ``0xAABBGGRR`` layout DWM stores."""
    match = re.fullmatch(r"#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})", color.strip())
    if not match:
        raise ValueError(f"Invalid accent colour: {color}")
    red, green, blue = (int(group, 16) for group in match.groups())
    return 0xFF000000 | (blue << 16) | (green << 8) | red


def accent_to_argb(color: str) -> int:
    """Convert ``#RRGGBB`` into the ``0xAARRGGBB`` layout of ``ColorizationColor``."""
    abgr = accent_to_dword(color)
    red, blue = abgr & 0xFF, (abgr >> 16) & 0xFF
    return (abgr & 0xFF00FF00) | (red << 16) | blue


def scale_to_dpi(percent: int) -> int:
    if percent < 100 or percent > 500:
        raise ValueError(f"Unsupported scaling: {percent}%")
    return round(DEFAULT_DPI * percent / 100)


class SystemConfigService:
    def __init__(
        self,
        config: FixedSystemConfig,
        layout: CloudLayout,
        *,
        cloud_root: Path | None = None,
        backup_existing: bool = True,
        command_runner: CommandRunner | None = None,
        registry: RegistryAccessor | None = None,
        desktop: DesktopRefresher | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._layout = layout
        self._cloud_root = Path(cloud_root) if cloud_root else None
        self._backup_existing = backup_existing
        self._runner = command_runner or SubprocessRunner()
        self._registry = registry or WindowsRegistryAccessor()
        self._desktop = desktop or WindowsDesktop()
        self._environ = os.environ if environ is None else environ
        self._steps: dict[str, Callable[[], ApplyStepResult]] = {
            STEP_DISPLAY_SCALING: self._apply_display_scaling,
            STEP_WALLPAPER: self._apply_wallpaper,
            STEP_LOCK_SCREEN: self._apply_lock_screen,
            STEP_ACCOUNT_PICTURE: self._apply_account_picture,
            STEP_ACCENT_COLOUR: self._apply_accent_colour,
            STEP_CLIPBOARD: self._apply_clipboard,
            STEP_OPTIONAL_FEATURES: self._apply_optional_features,
            STEP_NIGHT_LIGHT: self._apply_night_light,
            STEP_START_LAYOUT: self._apply_start_layout,
            STEP_DATE_TIME: self._apply_date_time_formats,
            STEP_POWER: self._apply_power,
        }

    def available_apply_steps(self) -> list[str]:
        return list(self._steps)

    def apply_with_results(self, selected: Iterable[str] | None = None) -> list[ApplyStepResult]:
        if selected is None:
            names = self.available_apply_steps()
        else:
            wanted = {name.lower() for name in selected}
            names = [name for name in self._steps if name.lower() in wanted]
        results: list[ApplyStepResult] = []
        for name in names:
            try:
                results.append(self._steps[name]())
            except Exception as exc:  # surfaced via the log callback
                results.append(ApplyStepResult(name, False, str(exc)))
        return results

    def check(self) -> list[ConfigCheckResult]:
        return [
            self._check_display_scaling(),
            self._check_accent_colour(),
            self._check_clipboard(),
            self._check_date_time_formats(),
            self._check_night_light(),
            self._check_power_plan(),
        ]

    def night_light_schedule(self) -> NightLightSchedule:
        setting = self._config.night_light
        return NightLightSchedule(
            enabled=setting.enabled,
            sunset_to_sunrise=setting.sunset_to_sunrise,
            start_hour=setting.start_hour,
            start_minute=setting.start_minute,
            end_hour=setting.end_hour,
            end_minute=setting.end_minute,
            color_temperature=setting.color_temperature,
        )

    def _apply_display_scaling(self) -> ApplyStepResult:
        dpi = scale_to_dpi(self._config.personalization.scale_percent)
        self._registry.set_value(DESKTOP_PATH, "LogPixels", dpi)
        self._registry.set_value(DESKTOP_PATH, "Win8DpiScaling", 1)
        actual = self._registry.get_value(DESKTOP_PATH, "LogPixels")
        return ApplyStepResult(STEP_DISPLAY_SCALING, actual == dpi, f"LogPixels={actual}; sign out to take effect")

    def _apply_wallpaper(self) -> ApplyStepResult:
        personalization = self._config.personalization
        source = self._cloud_file(self._layout.pictures_dir, personalization.wallpaper_file)
        target = place_file(source, user_profile(self._environ) / "Pictures" / "Wallpapers")
        self._registry.set_value(DESKTOP_PATH, "Wallpaper", str(target))
        self._registry.set_value(DESKTOP_PATH, "WallpaperStyle", personalization.wallpaper_style)
        self._registry.set_value(DESKTOP_PATH, "TileWallpaper", "0")
        refreshed = self._desktop.set_wallpaper(target)
        detail = f"wallpaper: {target}"
        if not refreshed:
            detail = f"{detail}; applies after sign-in"
        return ApplyStepResult(STEP_WALLPAPER, True, detail)

    def _apply_lock_screen(self) -> ApplyStepResult:
        source = self._cloud_file(self._layout.pictures_dir, self._config.personalization.lock_screen_file)
        target = place_file(source, program_data(self._environ) / "WinProvision" / "LockScreen")
        self._registry.set_value(LOCK_SCREEN_PATH, "LockScreenImagePath", str(target))
        self._registry.set_value(LOCK_SCREEN_PATH, "LockScreenImageUrl", str(target))
        self._registry.set_value(LOCK_SCREEN_PATH, "LockScreenImageStatus", 1)
        actual = self._registry.get_value(LOCK_SCREEN_PATH, "LockScreenImagePath")
        return ApplyStepResult(STEP_LOCK_SCREEN, actual == str(target), f"lock screen: {actual}")

    def _apply_account_picture(self) -> ApplyStepResult:
        source = self._cloud_file(self._layout.pictures_dir, self._config.personalization.account_picture_file)
        sid = self._current_user_sid()
        public = Path(self._environ.get("PUBLIC") or r"C:\Users\Public")
        target_dir = public / "AccountPictures" / sid
        target_dir.mkdir(parents=True, exist_ok=True)
        key = f"{ACCOUNT_PICTURE_PATH}\\{sid}"
        for size in ACCOUNT_PICTURE_SIZES:
            target = target_dir / f"Image{size}{source.suffix.lower()}"
            shutil.copy2(source, target)
            self._registry.set_value(key, f"Image{size}", str(target))
        return ApplyStepResult(STEP_ACCOUNT_PICTURE, True, f"sid={sid}; {len(ACCOUNT_PICTURE_SIZES)} sizes in {target_dir}")

    def _apply_accent_colour(self) -> ApplyStepResult:
        color = self._config.personalization.accent_color
        value = accent_to_dword(color)
        self._registry.set_value(DWM_PATH, "AccentColor", value)
        self._registry.set_value(DWM_PATH, "ColorizationColor", accent_to_argb(color))
        self._registry.set_value(DWM_PATH, "ColorPrevalence", 1)
        self._registry.set_value(ACCENT_PATH, "AccentColorMenu", value)
        self._registry.set_value(ACCENT_PATH, "StartColorMenu", value)
        self._registry.set_value(PERSONALIZE_PATH, "ColorPrevalence", 1)
        actual = self._registry.get_value(DWM_PATH, "AccentColor")
        return ApplyStepResult(STEP_ACCENT_COLOUR, actual == value, f"AccentColor={_format_dword(actual)}")

    def _apply_clipboard(self) -> ApplyStepResult:
        for name in CLIPBOARD_VALUES:
            self._registry.set_value(CLIPBOARD_PATH, name, 1)
        result = self._check_clipboard()
        return ApplyStepResult(STEP_CLIPBOARD, result.in_desired_state, result.actual)

    def _apply_optional_features(self) -> ApplyStepResult:
        detail_parts: list[str] = []
        success = True
        for feature in self._config.optional_features:
            completed = self._runner.run(
                ["dism", "/Online", "/Enable-Feature", f"/FeatureName:{feature}", "/All", "/NoRestart"]
            )
            ok = completed.returncode in DISM_SUCCESS_CODES
            success = success and ok
            note = "reboot required" if completed.returncode == 3010 else self._format_command_detail(completed)
            detail_parts.append(f"{feature}: {'ok' if ok else 'failed'} ({note})")
        return ApplyStepResult(STEP_OPTIONAL_FEATURES, success, "; ".join(detail_parts))

    def _apply_night_light(self) -> ApplyStepResult:
        blob = encode_settings(self.night_light_schedule())
        self._registry.set_value(NIGHT_LIGHT_REGISTRY_PATH, NIGHT_LIGHT_VALUE_NAME, blob)
        result = self._check_night_light()
        return ApplyStepResult(STEP_NIGHT_LIGHT, result.in_desired_state, f"{len(blob)} bytes written; {result.actual}")

    def _apply_start_layout(self) -> ApplyStepResult:
        source = self._cloud_file(self._layout.start_layout)
        destination = local_appdata(self._environ) / "Packages" / START_MENU_PACKAGE / "LocalState" / source.name
        backup = copy_file(source, destination, backup_existing=self._backup_existing)
        restart = self._runner.run(["taskkill", "/F", "/IM", "StartMenuExperienceHost.exe"])
        detail = f"copied to {destination}"
        if backup:
            detail = f"{detail}; previous layout kept as {backup.name}"
        detail = f"{detail}; restart: {self._format_command_detail(restart)}"
        return ApplyStepResult(STEP_START_LAYOUT, True, detail)

    def _apply_date_time_formats(self) -> ApplyStepResult:
        for value_name, value in self._date_time_values().items():
            self._registry.set_value(INTERNATIONAL_PATH, value_name, value)
        result = self._check_date_time_formats()
        return ApplyStepResult(STEP_DATE_TIME, result.in_desired_state, result.actual)

    def _apply_power(self) -> ApplyStepResult:
        power = self._config.power
        target = self._resolve_power_scheme(self._list_power_schemes()) or power.scheme
        commands = [
            ["powercfg", "/setactive", target],
            ["powercfg", "/change", "monitor-timeout-ac", str(power.monitor_timeout_ac)],
            ["powercfg", "/change", "monitor-timeout-dc", str(power.monitor_timeout_dc)],
            ["powercfg", "/change", "standby-timeout-ac", str(power.standby_timeout_ac)],
            ["powercfg", "/change", "standby-timeout-dc", str(power.standby_timeout_dc)],
            ["powercfg", "/hibernate", "on" if power.hibernate else "off"],
        ]
        detail_parts: list[str] = []
        success = True
        for command in commands:
            completed = self._runner.run(command)
            if completed.returncode != 0:
                success = False
                detail_parts.append(f"{' '.join(command[1:])}: {self._format_command_detail(completed)}")
        active_guid, active_name = self._get_active_power_scheme()
        if active_guid or active_name:
            detail_parts.append(f"active: {active_name} ({active_guid})".strip())
        return ApplyStepResult(STEP_POWER, success, "; ".join(detail_parts))

    def _check_display_scaling(self) -> ConfigCheckResult:
        expected = scale_to_dpi(self._config.personalization.scale_percent)
        actual = self._registry.get_value(DESKTOP_PATH, "LogPixels")
        actual_str = "Not Set" if actual is None else str(actual)
        return ConfigCheckResult(STEP_DISPLAY_SCALING, str(expected), actual_str, actual == expected)

    def _check_accent_colour(self) -> ConfigCheckResult:
        expected = accent_to_dword(self._config.personalization.accent_color)
        actual = self._registry.get_value(DWM_PATH, "AccentColor")
        return ConfigCheckResult(STEP_ACCENT_COLOUR, _format_dword(expected), _format_dword(actual), actual == expected)

    def _check_clipboard(self) -> ConfigCheckResult:
        values = {name: self._registry.get_value(CLIPBOARD_PATH, name) for name in CLIPBOARD_VALUES}
        actual = ", ".join(f"{name}={'Not Set' if value is None else value}" for name, value in values.items())
        expected = ", ".join(f"{name}=1" for name in CLIPBOARD_VALUES)
        return ConfigCheckResult(STEP_CLIPBOARD, expected, actual, all(value == 1 for value in values.values()))

    def _check_date_time_formats(self) -> ConfigCheckResult:
        desired = self._date_time_values()
        actual_values = {name: self._registry.get_value(INTERNATIONAL_PATH, name) for name in desired}
        expected = ", ".join(f"{name}={value}" for name, value in desired.items())
        actual = ", ".join(
            f"{name}={'Not Set' if value is None else value}" for name, value in actual_values.items()
        )
        ok = all(str(actual_values[name]) == value for name, value in desired.items())
        return ConfigCheckResult(STEP_DATE_TIME, expected, actual, ok)

    def _check_night_light(self) -> ConfigCheckResult:
        schedule = self.night_light_schedule()
        expected = _describe_schedule(schedule)
        stored = self._registry.get_value(NIGHT_LIGHT_REGISTRY_PATH, NIGHT_LIGHT_VALUE_NAME)
        if not isinstance(stored, (bytes, bytearray)):
            return ConfigCheckResult(STEP_NIGHT_LIGHT, expected, "Not Set", False)
        try:
            ok = _without_timestamp(bytes(stored)) == _without_timestamp(encode_settings(schedule, 0))
        except ValueError:
            ok = False
        actual = expected if ok else f"different schedule ({len(stored)} bytes)"
        return ConfigCheckResult(STEP_NIGHT_LIGHT, expected, actual, ok)

    def _check_power_plan(self) -> ConfigCheckResult:
        expected = self._config.power.friendly_name
        active_guid, active_name = self._get_active_power_scheme()
        target_guid = self._resolve_power_scheme(self._list_power_schemes())
        actual = active_name or ""
        if active_guid and active_name:
            actual = f"{active_name} ({active_guid})"
        if target_guid and active_guid:
            ok = active_guid.lower() == target_guid.lower()
        else:
            ok = expected.lower() in (active_name or "").lower()
        return ConfigCheckResult("Power Plan", expected, actual, ok)

    def _cloud_file(self, *parts: str) -> Path:
        if self._cloud_root is None:
            raise FileNotFoundError("Cloud setup folder not configured")
        path = self._cloud_root.joinpath(*parts)
        if not path.is_file():
            raise FileNotFoundError(f"Source not found: {path}")
        return path

    def _current_user_sid(self) -> str:
        completed = self._runner.run(["whoami", "/user", "/fo", "csv", "/nh"])
        if completed.returncode != 0 or not completed.stdout:
            raise RuntimeError(f"Unable to resolve user SID: {self._format_command_detail(completed)}")
        for row in csv.reader(io.StringIO(completed.stdout.strip())):
            if len(row) >= 2 and row[1].startswith("S-1-"):
                return row[1]
        raise RuntimeError(f"Unexpected whoami output: {completed.stdout.strip()}")

    def _date_time_values(self) -> dict[str, str]:
        formats = self._config.date_time
        return {
            "sShortDate": formats.short_date,
            "sLongDate": formats.long_date,
            "sShortTime": formats.short_time,
            "sTimeFormat": formats.long_time,
            "iFirstDayOfWeek": formats.first_day_of_week,
        }

    def _format_command_detail(self, completed: subprocess.CompletedProcess[str]) -> str:
        detail_parts = [f"exit={completed.returncode}"]
        stdout = (completed.stdout or "").strip()
        stderr = (completed.stderr or "").strip()
        if stdout:
            detail_parts.append(f"stdout: {stdout}")
        if stderr:
            detail_parts.append(f"stderr: {stderr}")
        return ", ".join(detail_parts)

    def _list_power_schemes(self) -> list[tuple[str, str, bool]]:
        output = self._run_and_capture(["powercfg", "/list"])
        schemes: list[tuple[str, str, bool]] = []
        for match in POWERCFG_GUID_PATTERN.finditer(output):
            schemes.append((match.group(1).strip(), match.group(2).strip(), bool(match.group(3))))
        return schemes

    def _get_active_power_scheme(self) -> tuple[str, str]:
        output = self._run_and_capture(["powercfg", "/getactivescheme"])
        match = POWERCFG_GUID_PATTERN.search(output)
        if match:
            return match.group(1).strip(), match.group(2).strip()
        return "", ""

    def _resolve_power_scheme(self, schemes: Iterable[tuple[str, str, bool]]) -> str:
        scheme = self._config.power.scheme.strip()
        friendly = self._config.power.friendly_name.strip()
        if re.fullmatch(r"[0-9a-fA-F-]{36}", scheme):
            return scheme
        alias_guid = KNOWN_POWER_SCHEMES.get(scheme.upper())
        if alias_guid:
            return alias_guid
        for guid, name, _active in schemes:
            if name.lower() == friendly.lower():
                return guid
        return ""

    def _run_and_capture(self, command: Sequence[str]) -> str:
        completed = self._runner.run(command)
        return (completed.stdout or "").strip()


def _without_timestamp(blob: bytes) -> bytes:
    header_length = 10
    _, offset = decode_varint(blob, header_length)
    return blob[:header_length] + blob[offset:]


def _describe_schedule(schedule: NightLightSchedule) -> str:
    if not schedule.enabled:
        return f"off, {schedule.color_temperature}K"
    if schedule.sunset_to_sunrise:
        return f"sunset to sunrise, {schedule.color_temperature}K"
    return (
        f"{schedule.start_hour:02d}:{schedule.start_minute:02d}-"
        f"{schedule.end_hour:02d}:{schedule.end_minute:02d}, {schedule.color_temperature}K"
    )


def _format_dword(value: RegistryValue | None) -> str:
    if value is None:
        return "Not Set"
    if isinstance(value, int):
        return f"0x{value:08X}"
    return str(value)
