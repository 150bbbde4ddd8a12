"""Master-server election between forwarding nodes."""

from __future__ import annotations

import logging
from enum import Enum, IntEnum

from aetherlink.hal import Hardware, SimulatorError
from aetherlink.protocol import DataPacket, NodeId

logger = logging.getLogger(__name__)

ELECTION_WINDOW_MS = 5000
_RX_SIZE = 256


class ElectionMessageType(IntEnum):
    ELECTION_START = 0x01
    ELECTION_RESPONSE = 0x02
    ELECTION_RESULT = 0x03


class ElectionState(Enum):
    IDLE = "idle"
    ELECTING = "electing"
    COMPLETED = "completed"


class ElectionProtocol:
    """Bully-style election of the master server among forwarding nodes."""

    def __init__(self, node_id: NodeId) -> None:
        self.node_id = node_id
        self.election_id = 0
        self.state = ElectionState.IDLE
        self._master: NodeId | None = None

    @property
    def priority(self) -> int:
        """Priority of this node: the first octet of its identifier."""
        return self.node_id.octets[0]

    @property
    def master(self) -> NodeId | None:
        """The currently known master server, if any."""
        return self._master

    def _send(self, hardware: Hardware, destination: NodeId, packet_id: int,
              payload: bytes) -> bool:
        packet = DataPacket.create(self.node_id, destination, packet_id, payload)
        try:
            hardware.radio.send_data(packet)
        except SimulatorError as exc:
            logger.warning("failed to send election message: %s", exc)
            return False
        return True

    def _id_bytes(self) -> bytes:
        return self.election_id.to_bytes(2, "big")

    def initiate_election(self, hardware: Hardware) -> None:
        """Start a new election, wait for replies, then broadcast the result."""
        logger.info("initiating master election")
        self.election_id = (self.election_id + 1) & 0xFFFF
        self.state = ElectionState.ELECTING

        message = (
            bytes([ElectionMessageType.ELECTION_START])
            + self._id_bytes()
            + bytes([self.priority])
        )
        self._send(hardware, NodeId.BROADCAST, self.election_id, message)

        hardware.delay_ms(ELECTION_WINDOW_MS)
        self._finish_election(hardware)

    def _finish_election(self, hardware: Hardware) -> None:
        self._master = self.node_id
        self.state = ElectionState.COMPLETED

        message = (
            bytes([ElectionMessageType.ELECTION_RESULT])
            + self._id_bytes()
            + bytes(self._master)
            + b"\x00"
        )
        if self._send(hardware, NodeId.BROADCAST, self.election_id, message):
            logger.info("election completed, master is %s", self._master)

    def process_messages(self, hardware: Hardware) -> ElectionMessageType | None:
        """Handle one received election message; return its type, or None."""
        packet = hardware.radio.receive_data(_RX_SIZE)
        if packet is None or not packet.data:
            return None
        try:
            kind = ElectionMessageType(packet.data[0])
        except ValueError:
            return None
        handler = {
            ElectionMessageType.ELECTION_START: self._on_start,
            ElectionMessageType.ELECTION_RESPONSE: self._on_response,
            ElectionMessageType.ELECTION_RESULT: self._on_result,
        }[kind]
        handler(hardware, packet)
        return kind

    def _on_start(self, hardware: Hardware, packet: DataPacket) -> None:
        data = packet.data
        if len(data) < 4:
            return
        election_id = int.from_bytes(data[1:3], "big")
        sender_priority = data[3]
        source = NodeId(packet.header.source)
        logger.info("election message from %s, election id %d", source, election_id)

        if sender_priority > self.priority:
            response = (
                bytes([ElectionMessageType.ELECTION_RESPONSE])
                + data[1:3]
                + bytes([self.priority])
            )
            self._send(hardware, source, election_id, response)
        elif self.state is not ElectionState.ELECTING:
            self.initiate_election(hardware)

    def _on_response(self, hardware: Hardware, packet: DataPacket) -> None:
        data = packet.data
        if len(data) < 4 or self.state is not ElectionState.ELECTING:
            return
        if int.from_bytes(data[1:3], "big") != self.election_id:
            return
        logger.info("election response from %s", NodeId(packet.header.source))

    def _on_result(self, hardware: Hardware, packet: DataPacket) -> None:
        data = packet.data
        if len(data) < 9:
            return
        master = NodeId(data[3:9])
        logger.info("election result received, master is %s", master)
        self._master = master
        self.state = ElectionState.COMPLETED