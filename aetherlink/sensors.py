"""Sensor readings taken by client nodes."""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass(frozen=True)
class SensorData:
    temperature: float  # degrees Celsius
    humidity: float  # percent
    pressure: float  # Pa


@dataclass
class _SensorPower:
    """Tracks whether the sensor bank is powered."""

    powered: bool = False


_power = _SensorPower()


def read_sensors(now: int | None = None) -> SensorData:
    """Read all sensors; the simulated values drift with ``now`` (seconds since the epoch)."""
    seconds = int(time.time()) if now is None else int(now)
    return SensorData(
        temperature=20.0 + (seconds % 100) / 10.0,
        humidity=50.0 + (seconds % 60) / 2.0,
        pressure=101000.0 + float(seconds % 1000),
    )


def init_sensors() -> None:
    """Power up the sensors."""
    _power.powered = True


def shutdown_sensors() -> None:
    """Switch the sensors off to save power."""
    _power.powered = False