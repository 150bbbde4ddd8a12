"""Server node: stores sensor readings and answers commands and queries."""

from __future__ import annotations

import argparse
import itertools
import logging

from aetherlink.commands import CommandProcessor
from aetherlink.hal import Hardware, SimChannel, SimHardware, SimulatorError
from aetherlink.protocol import Beacon, DataPacket, NodeId
from aetherlink.storage import CircularBuffer

logger = logging.getLogger(__name__)

RADIO_CHANNEL = 15
TX_POWER = 20
BEACON_INTERVAL_MS = 30_000
LOOP_DELAY_MS = 500
RX_SIZE = 1024
FALLBACK_RSSI = -80

MSG_SENSOR = 0x01
MSG_COMMAND = 0x02
MSG_QUERY = 0x03

SERVER_NODE_ID = NodeId(bytes([0x5E, 0x5E, 0x5E, 0x5E, 0x5E, 0x01]))


class ServerNode:
    """Main loop of a server node bound to one piece of hardware."""

    def __init__(
        self,
        hardware: Hardware,
        storage: CircularBuffer | None = None,
        command_processor: CommandProcessor | None = None,
    ) -> None:
        self.hardware = hardware
        self.storage = storage if storage is not None else CircularBuffer()
        self.commands = (
            command_processor
            if command_processor is not None
            else CommandProcessor(hardware.node_id)
        )
        self._beacon_timer = 0
        try:
            hardware.radio.configure(RADIO_CHANNEL, TX_POWER)
        except SimulatorError as exc:
            logger.warning("radio configuration failed: %s", exc)

    def _rssi(self) -> int:
        try:
            return self.hardware.radio.get_rssi()
        except SimulatorError:
            return FALLBACK_RSSI

    def send_beacon(self) -> bool:
        """Broadcast this server's beacon so clients can find it."""
        battery = self.hardware.battery_level
        beacon = Beacon.create(self.hardware.node_id, battery, self._rssi())
        try:
            self.hardware.radio.send_beacon(beacon)
        except SimulatorError as exc:
            logger.warning("failed to send beacon: %s", exc)
            return False
        logger.info("server beacon sent, battery %d%%", battery)
        return True

    def handle_data_packet(self, packet: DataPacket) -> None:
        """Store sensor data, queue commands or answer queries."""
        source = NodeId(packet.header.source)
        data = packet.data
        logger.info("packet from %s, %d bytes", source, len(data))
        if not data:
            return
        kind = data[0]
        if kind == MSG_SENSOR:
            logger.info("sensor data received")
            if len(data) >= 6:
                temperature = data[0] + data[1] / 100.0
                humidity = data[2] + data[3] / 100.0
                pressure = data[4] * 100.0 + data[5]
                self.storage.add_data(source, temperature, humidity, pressure)
                logger.info(
                    "stored reading: %s C, %s %%, %s hPa",
                    temperature, humidity, pressure / 100.0,
                )
        elif kind == MSG_COMMAND:
            logger.info("command received")
            self.commands.add_command(source, data[1:])
        elif kind == MSG_QUERY:
            logger.info("query received")
            self.send_response(source, self.storage.get_data_for_node(source))
        else:
            logger.info("unknown packet kind: %d", kind)

    def send_response(self, destination: NodeId, data) -> bool:
        """Send ``data`` to ``destination``; False if sending failed."""
        packet = DataPacket.create(self.hardware.node_id, destination, 0, data)
        try:
            self.hardware.radio.send_data(packet)
        except SimulatorError as exc:
            logger.warning("failed to send response: %s", exc)
            return False
        logger.info("response sent to %s", destination)
        return True

    def _receive(self) -> DataPacket | None:
        try:
            return self.hardware.radio.receive_data(RX_SIZE)
        except SimulatorError:
            return None

    def step(self) -> None:
        """Run one pass of the main loop."""
        now = self.hardware.timestamp_ms()
        if now - self._beacon_timer > BEACON_INTERVAL_MS:
            self.send_beacon()
            self._beacon_timer = now
        packet = self._receive()
        if packet is not None:
            self.handle_data_packet(packet)
        self.commands.process_commands(self.hardware, self.storage)
        self.hardware.delay_ms(LOOP_DELAY_MS)

    def run(self, max_iterations: int | None = None) -> None:
        """Loop forever, or for ``max_iterations`` passes."""
        passes = itertools.count() if max_iterations is None else range(max_iterations)
        logger.info("server node ready, entering main loop")
        for _ in passes:
            self.step()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="aetherlink-server", description="Run a simulated server node."
    )
    parser.add_argument(
        "--iterations", type=int, default=None,
        help="number of main-loop passes (default: run forever)",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    logger.info("starting server node (simulator)")
    hardware = SimHardware(SERVER_NODE_ID, SimChannel())
    try:
        ServerNode(hardware).run(args.iterations)
    except KeyboardInterrupt:
        pass
    return 0