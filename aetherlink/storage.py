"""Ring buffer of sensor records kept by server nodes."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass

from aetherlink.protocol import NodeId

STORAGE_SIZE = 1024
TIMESTAMP_STEP_MS = 1000

_RECORD = struct.Struct(">6sQHHH")
_F32 = struct.Struct("<f")


def _f32(value: float) -> float:
    """Round ``value`` to single precision."""
    try:
        return _F32.unpack(_F32.pack(value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _to_u16(value: float) -> int:
    """Convert like a saturating float-to-u16 cast: truncate, clamp, NaN to 0."""
    if math.isnan(value):
        return 0
    if value <= 0:
        return 0
    if value >= 0xFFFF:
        return 0xFFFF
    return int(value)


@dataclass(frozen=True)
class SensorRecord:
    node_id: NodeId
    timestamp: int
    temperature: float  # degrees Celsius
    humidity: float  # percent
    pressure: float  # Pa

    def to_bytes(self) -> bytes:
        """Encode as node id, timestamp, temperature*100, humidity*100, hPa."""
        return _RECORD.pack(
            bytes(self.node_id),
            self.timestamp,
            _to_u16(_f32(_f32(self.temperature) * 100.0)),
            _to_u16(_f32(_f32(self.humidity) * 100.0)),
            _to_u16(_f32(_f32(self.pressure) / 100.0)),
        )


class CircularBuffer:
    """Fixed-capacity ring of sensor records; new records overwrite the oldest slot."""

    def __init__(self, capacity: int = STORAGE_SIZE) -> None:
        if capacity < 1:
            raise ValueError("a circular buffer needs at least one slot")
        self._slots: list[SensorRecord | None] = [None] * capacity
        self._write_position = 0
        self.timestamp = 0

    def update_timestamp(self, timestamp: int) -> None:
        self.timestamp = timestamp

    def _records(self):
        return (record for record in self._slots if record is not None)

    @staticmethod
    def _serialize(records) -> bytes:
        return b"".join(record.to_bytes() for record in records)

    def add_data(self, node_id: NodeId, temperature: float, humidity: float,
                 pressure: float) -> None:
        """Store a reading stamped with the current time, then advance time by 1 s."""
        self._slots[self._write_position] = SensorRecord(
            node_id, self.timestamp, temperature, humidity, pressure
        )
        self._write_position = (self._write_position + 1) % len(self._slots)
        self.timestamp += TIMESTAMP_STEP_MS

    def get_data_for_node(self, node_id: NodeId) -> bytes:
        return self._serialize(r for r in self._records() if r.node_id == node_id)

    def get_data_in_timerange(self, start_time: int, end_time: int) -> bytes:
        return self._serialize(
            r for r in self._records() if start_time <= r.timestamp <= end_time
        )

    def clear_data_for_node(self, node_id: NodeId) -> None:
        self._slots = [
            None if record is not None and record.node_id == node_id else record
            for record in self._slots
        ]

    def clear_all_data(self) -> None:
        self._slots = [None] * len(self._slots)
        self._write_position = 0

    def __len__(self) -> int:
        return sum(1 for _ in self._records())