"""Command queue of a server node: parsing, execution and responses."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Protocol

from aetherlink.hal import Hardware, SimulatorError
from aetherlink.protocol import DataPacket, NodeId

logger = logging.getLogger(__name__)

QUEUE_SLOTS = 16
_ACK = b"\x01"


class CommandType(IntEnum):
    QUERY = 0x01
    CONFIGURE = 0x02
    CLEAR = 0x03
    REBOOT = 0x04


@dataclass(frozen=True)
class Command:
    source: NodeId
    command_type: CommandType
    parameters: bytes = b""


class SensorStore(Protocol):
    def get_data_for_node(self, node_id: NodeId) -> bytes: ...

    def clear_data_for_node(self, node_id: NodeId) -> None: ...


def _parse_command(source: NodeId, data: bytes) -> Command | None:
    if not data:
        return None
    try:
        command_type = CommandType(data[0])
    except ValueError:
        return None
    return Command(source, command_type, bytes(data[1:]))


class CommandProcessor:
    """Queues commands from remote nodes and executes them in arrival order."""

    def __init__(self, node_id: NodeId, slots: int = QUEUE_SLOTS) -> None:
        if slots < 2:
            raise ValueError("a command queue needs at least two slots")
        self.node_id = node_id
        # One ring slot always stays free, so the queue holds slots - 1 commands.
        self._capacity = slots - 1
        self._queue: deque[Command] = deque()

    def add_command(self, source: NodeId, data) -> bool:
        """Queue a command; False if the queue is full or the command is unknown."""
        if len(self._queue) >= self._capacity:
            logger.warning("command queue full, dropping command")
            return False
        command = _parse_command(source, bytes(data))
        if command is None:
            return False
        self._queue.append(command)
        logger.info("queued command %s", command.command_type.name)
        return True

    def process_commands(self, hardware: Hardware, storage: SensorStore) -> None:
        """Execute every queued command and answer its sender."""
        while self._queue:
            command = self._queue.popleft()
            payload = self._execute(command, storage)
            self._send_response(hardware, command.source, command.command_type, payload)

    @staticmethod
    def _execute(command: Command, storage: SensorStore) -> bytes:
        kind = command.command_type
        logger.info("executing %s command", kind.name)
        if kind is CommandType.QUERY:
            return storage.get_data_for_node(command.source)
        if kind is CommandType.CLEAR:
            storage.clear_data_for_node(command.source)
        return _ACK

    def _send_response(self, hardware: Hardware, destination: NodeId,
                       command_type: CommandType, data: bytes) -> None:
        payload = bytes([command_type]) + data
        packet = DataPacket.create(self.node_id, destination, 0, payload)
        try:
            hardware.radio.send_data(packet)
        except SimulatorError as exc:
            logger.warning("failed to send response: %s", exc)
        else:
            logger.info("response sent to %s", destination)

    def __len__(self) -> int:
        return len(self._queue)