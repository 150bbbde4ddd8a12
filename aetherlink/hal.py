"""Hardware abstraction: radio and node interfaces plus an in-process simulator."""

from __future__ import annotations

import copy
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable

from aetherlink.protocol import Beacon, DataPacket, NodeId

logger = logging.getLogger(__name__)

_DEFAULT_RX_SIZE = 1024
_MIN_CHANNEL = 11
_MAX_CHANNEL = 26
_MAX_POWER = 30


class Radio(ABC):
    """A radio able to exchange beacons and data packets."""

    @abstractmethod
    def send_beacon(self, beacon: Beacon) -> None:
        """Transmit a beacon."""

    @abstractmethod
    def send_data(self, packet: DataPacket) -> None:
        """Transmit a data packet."""

    @abstractmethod
    def receive_beacon(self) -> Beacon | None:
        """Return the next received beacon, or None if there is none."""

    @abstractmethod
    def receive_data(self, max_len: int = _DEFAULT_RX_SIZE) -> DataPacket | None:
        """Return the next received data packet of at most ``max_len`` bytes."""

    @abstractmethod
    def configure(self, channel: int, power: int) -> None:
        """Select the radio channel and transmit power."""

    @abstractmethod
    def get_rssi(self) -> int:
        """Return the current received signal strength in dBm."""


class Hardware(ABC):
    """A node's hardware: identity, radio, battery, clock and power control."""

    @property
    @abstractmethod
    def node_id(self) -> NodeId:
        """Identifier of this node."""

    @property
    @abstractmethod
    def radio(self) -> Radio:
        """The node's radio."""

    @property
    @abstractmethod
    def battery_level(self) -> int:
        """Battery charge in percent."""

    @abstractmethod
    def timestamp_ms(self) -> int:
        """Milliseconds elapsed since the node started."""

    @abstractmethod
    def delay_ms(self, ms: int) -> None:
        """Block for ``ms`` milliseconds."""

    @abstractmethod
    def enter_low_power_mode(self) -> None:
        """Switch to low-power operation."""

    @abstractmethod
    def exit_low_power_mode(self) -> None:
        """Leave low-power operation."""


class SimulatorError(Exception):
    """Raised by simulated hardware when an operation cannot be carried out."""


class SimChannel:
    """Shared medium carrying beacons and packets between simulated nodes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._beacons: deque[tuple[NodeId, Beacon]] = deque()
        self._packets: deque[tuple[NodeId, bytes]] = deque()

    def push_beacon(self, source: NodeId, beacon: Beacon) -> None:
        with self._lock:
            self._beacons.append((source, copy.copy(beacon)))

    def push_packet(self, source: NodeId, data) -> None:
        with self._lock:
            self._packets.append((source, bytes(data)))

    def get_beacon(self, dest: NodeId) -> Beacon | None:
        """Take the oldest beacon not sent by ``dest``."""
        with self._lock:
            for position, (source, beacon) in enumerate(self._beacons):
                if source != dest:
                    del self._beacons[position]
                    return beacon
        return None

    def get_packet(self, dest: NodeId, max_len: int) -> bytes | None:
        """Take the oldest packet not sent by ``dest`` that fits in ``max_len`` bytes."""
        with self._lock:
            for position, (source, data) in enumerate(self._packets):
                if source != dest and len(data) <= max_len:
                    del self._packets[position]
                    return data
        return None


class SimRadio(Radio):
    """Radio that transmits over a :class:`SimChannel`."""

    def __init__(self, sim_channel: SimChannel, node_id: NodeId) -> None:
        self.channel = _MIN_CHANNEL
        self.power = 20
        self._medium = sim_channel
        self.node_id = node_id

    def send_beacon(self, beacon: Beacon) -> None:
        self._medium.push_beacon(self.node_id, beacon)

    def send_data(self, packet: DataPacket) -> None:
        self._medium.push_packet(self.node_id, packet.to_bytes())

    def receive_beacon(self) -> Beacon | None:
        return self._medium.get_beacon(self.node_id)

    def receive_data(self, max_len: int = _DEFAULT_RX_SIZE) -> DataPacket | None:
        raw = self._medium.get_packet(self.node_id, max_len)
        if raw is None:
            return None
        try:
            return DataPacket.from_bytes(raw)
        except ValueError:
            return None

    def configure(self, channel: int, power: int) -> None:
        if not _MIN_CHANNEL <= channel <= _MAX_CHANNEL:
            raise SimulatorError(
                f"channel {channel} outside {_MIN_CHANNEL}..{_MAX_CHANNEL}"
            )
        if not 0 <= power <= _MAX_POWER:
            raise SimulatorError(f"transmit power {power} outside 0..{_MAX_POWER}")
        self.channel = channel
        self.power = power

    def get_rssi(self) -> int:
        nanos = time.time_ns() % 1_000_000_000
        return -70 - nanos % 20


class SimHardware(Hardware):
    """Simulated node hardware attached to a shared channel."""

    def __init__(
        self,
        node_id: NodeId,
        sim_channel: SimChannel,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = time.sleep,
    ) -> None:
        self._node_id = node_id
        self._radio = SimRadio(sim_channel, node_id)
        self._clock = clock
        self._sleep = sleep
        self._start = clock()
        self._battery_level = 100
        self.low_power = False

    @property
    def node_id(self) -> NodeId:
        return self._node_id

    @property
    def radio(self) -> SimRadio:
        return self._radio

    @property
    def battery_level(self) -> int:
        return self._battery_level

    def simulate_battery_drain(self, percent: int) -> None:
        self._battery_level = max(0, self._battery_level - percent)

    def timestamp_ms(self) -> int:
        return int((self._clock() - self._start) * 1000)

    def delay_ms(self, ms: int) -> None:
        self._sleep(ms / 1000)
        if ms > 1000:
            self.simulate_battery_drain(1)

    def enter_low_power_mode(self) -> None:
        self.low_power = True
        logger.info("Node %s entered low power mode", self._node_id)

    def exit_low_power_mode(self) -> None:
        self.low_power = False
        logger.info("Node %s exited low power mode", self._node_id)