"""Discovery of server nodes by broadcasting and listening for beacons."""

from __future__ import annotations

import logging

from aetherlink.hal import Hardware, SimulatorError
from aetherlink.protocol import Beacon, NodeId, PacketType

logger = logging.getLogger(__name__)

DISCOVERY_ATTEMPTS = 30
RETRY_DELAY_MS = 1000
FALLBACK_RSSI = -80


def _rssi(hardware: Hardware) -> int:
    try:
        return hardware.radio.get_rssi()
    except SimulatorError:
        return FALLBACK_RSSI


def send_discovery_beacon(hardware: Hardware) -> Beacon | None:
    """Broadcast this node's beacon; return it, or None if sending failed."""
    beacon = Beacon.create(hardware.node_id, hardware.battery_level, _rssi(hardware))
    try:
        hardware.radio.send_beacon(beacon)
    except SimulatorError as exc:
        logger.warning("failed to send discovery beacon: %s", exc)
        return None
    return beacon


def receive_server_response(hardware: Hardware) -> NodeId | None:
    """Return the sender of the next valid beacon, if one has arrived."""
    try:
        beacon = hardware.radio.receive_beacon()
    except SimulatorError:
        return None
    if beacon is None or not beacon.is_valid() or beacon.packet_type != PacketType.BEACON:
        return None
    logger.info("found a candidate server node, RSSI %d", beacon.rssi)
    return NodeId(beacon.source)


def find_server(hardware: Hardware, max_attempts: int = DISCOVERY_ATTEMPTS) -> NodeId | None:
    """Beacon once a second until a server answers or the attempts run out."""
    logger.info("looking for a server node")
    for attempt in range(1, max_attempts + 1):
        send_discovery_beacon(hardware)
        server = receive_server_response(hardware)
        if server is not None:
            return server
        hardware.delay_ms(RETRY_DELAY_MS)
        logger.info("searching for server... %d/%ds", attempt, max_attempts)
    logger.info("no server node found")
    return None