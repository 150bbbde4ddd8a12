"""Forwarding node: relays packets, keeps the service directory and sets up paths."""

from __future__ import annotations

import argparse
import itertools
import logging

from aetherlink.directory import Capabilities, NetworkServiceDirectory, ServiceMetrics
from aetherlink.election import ElectionProtocol
from aetherlink.hal import Hardware, SimChannel, SimHardware, SimulatorError
from aetherlink.protocol import (
    Beacon,
    DataPacket,
    NodeId,
    PacketType,
    PathStatus,
    QosRequirements,
    ServiceResponse,
    ServiceType,
    deserialize_service_request,
    serialize_service_response,
)
from aetherlink.routing import ForwardingEngine

logger = logging.getLogger(__name__)

RADIO_CHANNEL = 15
TX_POWER = 20
BEACON_INTERVAL_MS = 60_000
ELECTION_INTERVAL_MS = 300_000
CLEANUP_INTERVAL_MS = 30_000
LOOP_DELAY_MS = 1000
RX_SIZE = 1024
FALLBACK_RSSI = -80
PATH_REQUEST_LEN = 20
PATH_ESTABLISH_MIN_LEN = 12
PATH_CONFIRM_LEN = 8
STATUS_SUCCESS = 0
STATUS_FAILURE = 1

FORWARD_NODE_ID = NodeId(bytes([0xF1, 0xF2, 0xF3, 0xF4, 0xF5, 0xF6]))


class ForwardNode:
    """Main loop of a forwarding node bound to one piece of hardware."""

    def __init__(
        self,
        hardware: Hardware,
        forwarding_engine: ForwardingEngine | None = None,
        election: ElectionProtocol | None = None,
        directory: NetworkServiceDirectory | None = None,
    ) -> None:
        self.hardware = hardware
        self.routes = (
            forwarding_engine
            if forwarding_engine is not None
            else ForwardingEngine(hardware.node_id)
        )
        self.election = (
            election if election is not None else ElectionProtocol(hardware.node_id)
        )
        self.directory = directory if directory is not None else NetworkServiceDirectory()
        self._beacon_timer = 0
        self._election_timer = 0
        self._cleanup_timer = 0
        self._handlers = {
            PacketType.DATA: lambda packet, now: self.handle_data_packet(packet),
            PacketType.SERVICE_REQUEST: self.handle_service_request,
            PacketType.PATH_ESTABLISH: lambda packet, now: self.handle_path_establish(packet),
            PacketType.PATH_CONFIRM: lambda packet, now: self.handle_path_confirm(packet),
        }
        try:
            hardware.radio.configure(RADIO_CHANNEL, TX_POWER)
        except SimulatorError as exc:
            logger.warning("radio configuration failed: %s", exc)

    @property
    def node_id(self) -> NodeId:
        return self.hardware.node_id

    def _rssi(self) -> int:
        try:
            return self.hardware.radio.get_rssi()
        except SimulatorError:
            return FALLBACK_RSSI

    def _send(self, destination: NodeId, packet_id: int, payload, what: str) -> bool:
        packet = DataPacket.create(self.node_id, destination, packet_id, payload)
        try:
            self.hardware.radio.send_data(packet)
        except SimulatorError as exc:
            logger.warning("failed to send %s: %s", what, exc)
            return False
        return True

    def _relay(self, packet: DataPacket, what: str) -> NodeId | None:
        """Resend ``packet`` towards its destination; return the next hop used."""
        destination = NodeId(packet.header.destination)
        next_hop = self.routes.get_next_hop(destination)
        if next_hop is None:
            return None
        if not self._send(next_hop, packet.header.packet_id, packet.data, what):
            return None
        return next_hop

    def send_beacon(self) -> bool:
        """Broadcast this node's beacon."""
        battery = self.hardware.battery_level
        beacon = Beacon.create(self.node_id, battery, self._rssi())
        try:
            self.hardware.radio.send_beacon(beacon)
        except SimulatorError as exc:
            logger.warning("failed to send beacon: %s", exc)
            return False
        logger.info("forward node beacon sent, battery %d%%", battery)
        return True

    def handle_beacon(self, beacon: Beacon, current_time: int) -> bool:
        """Learn a route and a video-relay service from a valid beacon."""
        if not beacon.is_valid():
            return False
        source = NodeId(beacon.source)
        self.routes.update_route(source, beacon.rssi)
        logger.info(
            "beacon from %s, signal %d, battery %d%%",
            source, beacon.rssi, beacon.battery_level,
        )
        capabilities = Capabilities(
            max_bandwidth=1000,
            min_latency=100,
            reliability=90,
            battery_level=beacon.battery_level,
        )
        metrics = ServiceMetrics(
            success_rate=100, avg_response_time=50, signal_strength=beacon.rssi
        )
        self.directory.update_service(
            source, ServiceType.VIDEO_RELAY, 0, capabilities, metrics, current_time
        )
        return True

    def handle_data_packet(self, packet: DataPacket) -> NodeId | None:
        """Forward a data packet not meant for this node; return the next hop."""
        source = NodeId(packet.header.source)
        destination = NodeId(packet.header.destination)
        logger.info(
            "data packet from %s to %s, %d bytes", source, destination, len(packet.data)
        )
        if destination.is_broadcast() or destination == self.node_id:
            return None
        next_hop = self._relay(packet, "forwarded packet")
        if next_hop is None:
            logger.info("no route to %s, dropping packet", destination)
        else:
            logger.info("forwarded packet to next hop %s", next_hop)
        return next_hop

    def handle_service_request(self, packet: DataPacket, current_time: int) -> ServiceResponse | None:
        """Answer a service request and, on success, set up a path to the server."""
        source = NodeId(packet.header.source)
        logger.info("service request from %s", source)
        request = deserialize_service_request(packet.data)
        if request is None:
            logger.info("could not parse service request")
            return None
        logger.info("requested service: %s", request.service_type.name)

        best = self.directory.find_best_service(request.service_type, request.qos)
        if best is None:
            logger.info("no matching service provider")
            response = ServiceResponse(
                service_id=0, server_node_id=NodeId.BROADCAST, status=STATUS_FAILURE
            )
        else:
            logger.info("best service provider: %s", best.node_id)
            response = ServiceResponse(
                service_id=current_time & 0xFFFFFFFF,
                server_node_id=best.node_id,
                status=STATUS_SUCCESS,
            )

        sent = self._send(
            source,
            packet.header.packet_id,
            serialize_service_response(response),
            "service response",
        )
        if best is not None:
            if sent:
                logger.info("service response sent to %s", source)
            self.establish_path(source, best.node_id, request.service_type, request.qos)
        return response

    def establish_path(
        self,
        client: NodeId,
        server: NodeId,
        service_type: ServiceType,
        qos: QosRequirements,
    ) -> bool:
        """Send a path-establish request for ``client`` to ``server``."""
        logger.info("establishing relay path from %s to %s", client, server)
        payload = (
            bytes(client)
            + bytes([service_type])
            + qos.min_bandwidth.to_bytes(2, "big")
            + qos.max_latency.to_bytes(2, "big")
            + bytes([qos.reliability])
        ).ljust(PATH_REQUEST_LEN, b"\x00")
        if not self._send(server, 0, payload, "path establish request"):
            return False
        logger.info("path establish request sent to server %s", server)
        return True

    def handle_path_establish(self, packet: DataPacket) -> bool:
        """Relay a path-establish request, or confirm it when addressed here."""
        source = NodeId(packet.header.source)
        destination = NodeId(packet.header.destination)
        logger.info("path establish request from %s", source)
        if destination != self.node_id:
            next_hop = self._relay(packet, "path establish request")
            if next_hop is not None:
                logger.info("relayed path establish request to %s", next_hop)
            return next_hop is not None
        if len(packet.data) < PATH_ESTABLISH_MIN_LEN:
            return False
        client = NodeId(packet.data[:6])
        confirm = bytes(client) + bytes([PathStatus.SUCCESS, 1])
        if not self._send(source, packet.header.packet_id, confirm, "path confirm"):
            return False
        logger.info("path confirm sent to forward node %s", source)
        return True

    def handle_path_confirm(self, packet: DataPacket) -> bool:
        """Pass a path confirmation on to its client with one more hop counted."""
        source = NodeId(packet.header.source)
        logger.info("path confirm from %s", source)
        data = packet.data
        if len(data) < PATH_CONFIRM_LEN:
            return False
        client = NodeId(data[:6])
        status, hops = data[6], data[7]
        logger.info("path confirm: client %s, status %d, hops %d", client, status, hops)
        forward_data = data[:7] + bytes([(hops + 1) & 0xFF])
        if not self._send(client, packet.header.packet_id, forward_data,
                          "path confirm to client"):
            return False
        logger.info("path confirm forwarded to client %s", client)
        return True

    def handle_other_packet(self, packet: DataPacket) -> NodeId | None:
        """Forward any other packet not meant for this node; return the next hop."""
        destination = NodeId(packet.header.destination)
        logger.info(
            "packet of kind %s from %s to %s",
            packet.header.packet_type, NodeId(packet.header.source), destination,
        )
        if destination == self.node_id or destination.is_broadcast():
            return None
        return self._relay(packet, "forwarded packet")

    def _dispatch(self, packet: DataPacket, now: int) -> None:
        handler = self._handlers.get(packet.header.packet_type)
        if handler is None:
            self.handle_other_packet(packet)
        else:
            handler(packet, now)

    def step(self) -> None:
        """Run one pass of the main loop."""
        hardware = self.hardware
        now = hardware.timestamp_ms()
        if now - self._beacon_timer > BEACON_INTERVAL_MS:
            self.send_beacon()
            self._beacon_timer = now
        if now - self._election_timer > ELECTION_INTERVAL_MS:
            self.election.initiate_election(hardware)
            self._election_timer = now
        if now - self._cleanup_timer > CLEANUP_INTERVAL_MS:
            self.directory.cleanup(now)
            self._cleanup_timer = now

        try:
            packet = hardware.radio.receive_data(RX_SIZE)
        except SimulatorError:
            packet = None
        if packet is not None:
            self._dispatch(packet, now)

        try:
            beacon = hardware.radio.receive_beacon()
        except SimulatorError:
            beacon = None
        if beacon is not None:
            self.handle_beacon(beacon, now)

        self.election.process_messages(hardware)
        hardware.delay_ms(LOOP_DELAY_MS)

    def run(self, max_iterations: int | None = None) -> None:
        """Loop forever, or for ``max_iterations`` passes."""
        passes = itertools.count() if max_iterations is None else range(max_iterations)
        logger.info("forward node ready, entering main loop")
        for _ in passes:
            self.step()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="aetherlink-forward", description="Run a simulated forwarding node."
    )
    parser.add_argument(
        "--iterations", type=int, default=None,
        help="number of main-loop passes (default: run forever)",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    logger.info("starting forward node (simulator)")
    hardware = SimHardware(FORWARD_NODE_ID, SimChannel())
    try:
        ForwardNode(hardware).run(args.iterations)
    except KeyboardInterrupt:
        pass
    return 0