"""Client node: finds a forwarding node, obtains a relay service and streams frames."""

from __future__ import annotations

import argparse
import itertools
import logging
import struct

from aetherlink.discovery import find_server
from aetherlink.hal import Hardware, SimChannel, SimHardware, SimulatorError
from aetherlink.protocol import (
    DataPacket,
    NodeId,
    PacketType,
    PathStatus,
    QosRequirements,
    ServiceType,
)
from aetherlink.sensors import SensorData, init_sensors, read_sensors
from aetherlink.service_client import ServiceEndpoint, request_service

logger = logging.getLogger(__name__)

RADIO_CHANNEL = 15
TX_POWER = 20
DISCOVERY_RETRIES = 5
DISCOVERY_RETRY_DELAY_MS = 5000
SERVICE_EXPIRY_S = 60
FRAME_INTERVAL_MS = 500
PATH_TIMEOUT_MS = 30_000
LOOP_DELAY_MS = 100
RX_SIZE = 1024
FRAME_NUMBER_MODULUS = 10_000
VIDEO_MARKER = 0x01
PATH_CONFIRM_MIN_LEN = 8

VIDEO_QOS = QosRequirements(min_bandwidth=500, max_latency=200, reliability=80)

CLIENT_NODE_ID = NodeId(bytes([0xC1, 0xC2, 0xC3, 0xC4, 0xC5, 0xC6]))

_VIDEO_FRAME = struct.Struct(">BIIfff")


def encode_video_frame(service_id: int, frame_number: int, sensor_data: SensorData) -> bytes:
    """Encode a frame: marker, service id, frame number and three big-endian floats."""
    return _VIDEO_FRAME.pack(
        VIDEO_MARKER,
        service_id,
        frame_number,
        sensor_data.temperature,
        sensor_data.humidity,
        sensor_data.pressure,
    )


def send_video_data(
    hardware: Hardware, endpoint: ServiceEndpoint, sensor_data: SensorData
) -> int | None:
    """Send one frame to the endpoint's server; return its number, or None on failure."""
    frame_number = hardware.timestamp_ms() % FRAME_NUMBER_MODULUS
    payload = encode_video_frame(endpoint.service_id, frame_number, sensor_data)
    packet = DataPacket.create(
        hardware.node_id, endpoint.server_id, frame_number & 0xFFFF, payload
    )
    try:
        hardware.radio.send_data(packet)
    except SimulatorError as exc:
        logger.warning("failed to send video data: %s", exc)
        return None
    logger.info("sent video frame #%d", frame_number)
    return frame_number


def _discover_forward_node(hardware: Hardware) -> NodeId | None:
    for attempt in range(1, DISCOVERY_RETRIES + 1):
        forward = find_server(hardware)
        if forward is not None:
            return forward
        logger.info("no forward node found, retry %d/%d", attempt, DISCOVERY_RETRIES)
        hardware.delay_ms(DISCOVERY_RETRY_DELAY_MS)
    return None


def _receive(hardware: Hardware):
    try:
        return hardware.radio.receive_data(RX_SIZE)
    except SimulatorError:
        return None


def client_main(hardware: Hardware, max_iterations: int | None = None) -> int:
    """Run the client; return how many video frames were sent.

    The main loop runs forever unless ``max_iterations`` bounds it; it also
    ends when no path is confirmed within thirty seconds.
    """
    try:
        hardware.radio.configure(RADIO_CHANNEL, TX_POWER)
    except SimulatorError as exc:
        logger.warning("radio configuration failed: %s", exc)
    init_sensors()

    logger.info("searching the network")
    forward_id = _discover_forward_node(hardware)
    if forward_id is None:
        logger.info("no forward node could be found, giving up")
        return 0
    logger.info("found forward node %s", forward_id)

    logger.info("requesting a video relay service")
    endpoint = request_service(
        hardware, forward_id, ServiceType.VIDEO_RELAY, VIDEO_QOS, SERVICE_EXPIRY_S
    )
    if endpoint is None:
        logger.info("video relay service unavailable, giving up")
        return 0
    logger.info(
        "video relay granted: server %s, service id %d",
        endpoint.server_id,
        endpoint.service_id,
    )

    logger.info("waiting for the relay path")
    path_established = False
    path_timer = 0
    send_timer = 0
    frames_sent = 0
    passes = itertools.count() if max_iterations is None else range(max_iterations)

    for _ in passes:
        now = hardware.timestamp_ms()

        packet = _receive(hardware)
        if packet is not None:
            if packet.header.packet_type == PacketType.PATH_CONFIRM:
                data = packet.data
                if len(data) >= PATH_CONFIRM_MIN_LEN:
                    status = data[6]
                    if status == PathStatus.SUCCESS:
                        path_established = True
                        logger.info("relay path established, hops %d", data[7])
                    else:
                        logger.info("relay path failed, status %d", status)
            else:
                logger.info("received packet of kind %s", packet.header.packet_type)

        if path_established:
            if now - send_timer > FRAME_INTERVAL_MS:
                if send_video_data(hardware, endpoint, read_sensors()) is not None:
                    frames_sent += 1
                send_timer = now
        elif now - path_timer > PATH_TIMEOUT_MS:
            logger.info("timed out waiting for the relay path")
            return frames_sent

        hardware.delay_ms(LOOP_DELAY_MS)

    return frames_sent


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="aetherlink-client", description="Run a simulated client node."
    )
    parser.add_argument(
        "--iterations", type=int, default=None,
        help="number of main-loop passes (default: run until the path times out)",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    logger.info("starting client node (simulator)")
    hardware = SimHardware(CLIENT_NODE_ID, SimChannel())
    try:
        client_main(hardware, args.iterations)
    except KeyboardInterrupt:
        pass
    return 0