"""Immutable provisioning values for this machine."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class PowerSetting:
    scheme: str
    friendly_name: str
    monitor_timeout_ac: int
    monitor_timeout_dc: int
    standby_timeout_ac: int
    standby_timeout_dc: int
    hibernate: bool


@dataclass(frozen=True)
class DateTimeFormatSetting:
    short_date: str
    long_date: str
    short_time: str
    long_time: str
    first_day_of_week: str


@dataclass(frozen=True)
class PersonalizationSetting:
    scale_percent: int
    accent_color: str
    wallpaper_file: str
    wallpaper_style: str
    lock_screen_file: str
    account_picture_file: str


@dataclass(frozen=True)
class NightLightSetting:
    enabled: bool
    sunset_to_sunrise: bool
    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int
    color_temperature: int


@dataclass(frozen=True)
class CloudLayout:
    """Relative locations inside the cloud-synced setup folder."""

    app_list: str
    winget_list: str
    config_dir: str
    pictures_dir: str
    start_layout: str


@dataclass(frozen=True)
class FixedSystemConfig:
    personalization: PersonalizationSetting
    date_time: DateTimeFormatSetting
    power: PowerSetting
    night_light: NightLightSetting
    optional_features: Tuple[str, ...]


@dataclass(frozen=True)
class ImmutableConfig:
    system: FixedSystemConfig
    cloud: CloudLayout


CLOUD_SETUP_FOLDER = "Setup"

FIXED_SYSTEM_CONFIG = FixedSystemConfig(
    personalization=PersonalizationSetting(
        scale_percent=125,
        accent_color="#0063B1",
        wallpaper_file="wallpaper.jpg",
        wallpaper_style="10",
        lock_screen_file="lockscreen.jpg",
        account_picture_file="account.png",
    ),
    date_time=DateTimeFormatSetting(
        short_date="yyyy-MM-dd",
        long_date="dddd, d MMMM yyyy",
        short_time="HH:mm",
        long_time="HH:mm:ss",
        first_day_of_week="0",
    ),
    power=PowerSetting(
        scheme="SCHEME_BALANCED",
        friendly_name="Balanced",
        monitor_timeout_ac=15,
        monitor_timeout_dc=5,
        standby_timeout_ac=0,
        standby_timeout_dc=20,
        hibernate=False,
    ),
    night_light=NightLightSetting(
        enabled=True,
        sunset_to_sunrise=False,
        start_hour=21,
        start_minute=0,
        end_hour=7,
        end_minute=0,
        color_temperature=3400,
    ),
    optional_features=(
        "Microsoft-Windows-Subsystem-Linux",
        "VirtualMachinePlatform",
        "Containers-DisposableClientVM",
    ),
)

CLOUD_LAYOUT = CloudLayout(
    app_list="apps.txt",
    winget_list="winget.txt",
    config_dir="Config",
    pictures_dir="Pictures",
    start_layout="Config/StartMenu/start2.bin",
)

IMMUTABLE_CONFIG = ImmutableConfig(
    system=FIXED_SYSTEM_CONFIG,
    cloud=CLOUD_LAYOUT,
)
