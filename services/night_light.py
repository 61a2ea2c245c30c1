"""Encoder for the Night Light schedule stored in the CloudStore registry key.

Windows keeps the Night Light settings as a small tagged binary structure
under ``windows.data.bluelightreduction.settings``. There is no public API
for it, so the layout below reproduces what the Settings app writes:

    header       43 42 01 00 0A 02 01 00 2A 06
    timestamp    LEB128 varint, seconds since the Unix epoch
    marker       2A 2B 0E, then one length byte for the payload
    payload      43 42 01 00
                 02 01           schedule enabled (omitted when off)
                 C2 0A 00        sunset to sunrise (omitted for a fixed schedule)
                 CA 14 <time> 00 start time
                 CA 1E <time> 00 end time
                 CF 28 <varint>  colour temperature in kelvin, doubled
                 CA 32 00 CA 3C 00
    trailer      00 00 00 00

A ``<time>`` is ``0E <hour>`` followed by ``2E <minute>``; each pair is left
out when its value is zero.
"""
from __future__ import annotations

import time
from dataclasses import dataclass

NIGHT_LIGHT_REGISTRY_PATH = (
    r"HKCU:\Software\Microsoft\Windows\CurrentVersion\CloudStore\Store\DefaultAccount\Current"
    r"\default$windows.data.bluelightreduction.settings\windows.data.bluelightreduction.settings"
)
NIGHT_LIGHT_VALUE_NAME = "Data"

MIN_COLOR_TEMPERATURE = 1200
MAX_COLOR_TEMPERATURE = 6500

_HEADER = bytes([0x43, 0x42, 0x01, 0x00, 0x0A, 0x02, 0x01, 0x00, 0x2A, 0x06])
_PAYLOAD_MARKER = bytes([0x2A, 0x2B, 0x0E])
_PAYLOAD_HEADER = bytes([0x43, 0x42, 0x01, 0x00])
_ENABLED = bytes([0x02, 0x01])
_SUNSET_TO_SUNRISE = bytes([0xC2, 0x0A, 0x00])
_START_TAG = bytes([0xCA, 0x14])
_END_TAG = bytes([0xCA, 0x1E])
_TEMPERATURE_TAG = bytes([0xCF, 0x28])
_PAYLOAD_TAIL = bytes([0xCA, 0x32, 0x00, 0xCA, 0x3C, 0x00])
_TRAILER = bytes(4)


@dataclass(frozen=True)
class NightLightSchedule:
    enabled: bool = True
    sunset_to_sunrise: bool = False
    start_hour: int = 21
    start_minute: int = 0
    end_hour: int = 7
    end_minute: int = 0
    color_temperature: int = 3400


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"Cannot encode negative value {value}")
    out = bytearray()
    while True:
        group = value & 0x7F
        value >>= 7
        if value:
            out.append(group | 0x80)
        else:
            out.append(group)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    result = 0
    shift = 0
    position = offset
    while True:
        if position >= len(data):
            raise ValueError("Truncated varint")
        byte = data[position]
        position += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, position
        shift += 7


def _encode_time(hour: int, minute: int) -> bytes:
    if not 0 <= hour <= 23:
        raise ValueError(f"Hour out of range: {hour}")
    if not 0 <= minute <= 59:
        raise ValueError(f"Minute out of range: {minute}")
    out = bytearray()
    if hour:
        out += bytes([0x0E, hour])
    if minute:
        out += bytes([0x2E, minute])
    return bytes(out)


def encode_payload(schedule: NightLightSchedule) -> bytes:
    temperature = schedule.color_temperature
    if not MIN_COLOR_TEMPERATURE <= temperature <= MAX_COLOR_TEMPERATURE:
        raise ValueError(
            f"Colour temperature {temperature}K outside {MIN_COLOR_TEMPERATURE}-{MAX_COLOR_TEMPERATURE}K"
        )
    out = bytearray(_PAYLOAD_HEADER)
    if schedule.enabled:
        out += _ENABLED
    if schedule.sunset_to_sunrise:
        out += _SUNSET_TO_SUNRISE
    out += _START_TAG + _encode_time(schedule.start_hour, schedule.start_minute) + b"\x00"
    out += _END_TAG + _encode_time(schedule.end_hour, schedule.end_minute) + b"\x00"
    out += _TEMPERATURE_TAG + encode_varint(temperature * 2)
    out += _PAYLOAD_TAIL
    return bytes(out)


def encode_settings(schedule: NightLightSchedule, timestamp: int | None = None) -> bytes:
    stamp = int(time.time()) if timestamp is None else timestamp
    payload = encode_payload(schedule)
    if len(payload) > 0xFF:
        raise ValueError("Night Light payload too large")
    return (
        _HEADER
        + encode_varint(stamp)
        + _PAYLOAD_MARKER
        + bytes([len(payload)])
        + payload
        + _TRAILER
    )
