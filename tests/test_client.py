import struct
from collections import deque
from types import SimpleNamespace

from aetherlink.client import client_main, encode_video_frame, send_video_data
from aetherlink.hal import Hardware, Radio, SimChannel, SimHardware
from aetherlink.protocol import (
    Beacon,
    NodeId,
    PacketType,
    PathStatus,
    ServiceResponse,
    ServiceType,
    deserialize_service_request,
    serialize_service_response,
)
from aetherlink.sensors import SensorData
from aetherlink.service_client import ServiceEndpoint

CLIENT = NodeId(bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06]))
FORWARD = NodeId(bytes([0xF1, 0xF2, 0xF3, 0xF4, 0xF5, 0xF6]))
SERVER = NodeId(bytes([0x5E, 0x5E, 0x5E, 0x5E, 0x5E, 0x01]))


class _Clock:
    def __init__(self, value=0.0):
        self.value = value

    def __call__(self):
        return self.value


def _sim(node_id, channel, clock=None):
    return SimHardware(
        node_id, channel, clock=clock or _Clock(), sleep=lambda seconds: None
    )


class _FakeRadio(Radio):
    def __init__(self, inbox, beacons):
        self.inbox = deque(inbox)
        self.beacons = deque(beacons)
        self.sent = []
        self.sent_beacons = []

    def send_beacon(self, beacon):
        self.sent_beacons.append(beacon)

    def send_data(self, packet):
        self.sent.append(packet)

    def receive_beacon(self):
        return self.beacons.popleft() if self.beacons else None

    def receive_data(self, max_len=1024):
        return self.inbox.popleft() if self.inbox else None

    def configure(self, channel, power):
        self.settings = (channel, power)

    def get_rssi(self):
        return -65


class _FakeHardware(Hardware):
    def __init__(self, radio):
        self._radio = radio
        self.now = 0
        self.delays = 0

    @property
    def node_id(self):
        return CLIENT

    @property
    def radio(self):
        return self._radio

    @property
    def battery_level(self):
        return 100

    def timestamp_ms(self):
        return self.now

    def delay_ms(self, ms):
        self.now += ms
        self.delays += 1

    def enter_low_power_mode(self):
        pass

    def exit_low_power_mode(self):
        pass


def _incoming(packet_type, data):
    header = SimpleNamespace(
        source=bytes(FORWARD),
        destination=bytes(CLIENT),
        packet_id=0,
        packet_type=packet_type,
    )
    return SimpleNamespace(header=header, data=data)


def _service_reply(service_id=7):
    response = ServiceResponse(service_id=service_id, server_node_id=SERVER, status=0)
    return _incoming(PacketType.SERVICE_RESPONSE, serialize_service_response(response))


def _path_confirm(status):
    return _incoming(PacketType.PATH_CONFIRM, bytes(CLIENT) + bytes([status, 2]))


def test_encode_video_frame_wire_layout():
    frame = encode_video_frame(1, 2, SensorData(0.0, 0.0, 0.0))
    assert frame == bytes([1, 0, 0, 0, 1, 0, 0, 0, 2]) + bytes(12)


def test_encode_video_frame_round_trip():
    sensor = SensorData(temperature=25.5, humidity=65.0, pressure=101325.0)
    frame = encode_video_frame(0xDEADBEEF, 9999, sensor)
    assert len(frame) == 21
    marker, service_id, number, temp, hum, press = struct.unpack(">BIIfff", frame)
    assert (marker, service_id, number) == (1, 0xDEADBEEF, 9999)
    assert (temp, hum, press) == (25.5, 65.0, 101325.0)


def test_send_video_data_reaches_server():
    channel = SimChannel()
    clock = _Clock()
    client = _sim(CLIENT, channel, clock)
    server = _sim(SERVER, channel)
    clock.value = 23.5
    endpoint = ServiceEndpoint(
        service_id=42, server_id=SERVER, relay_id=FORWARD,
        service_type=ServiceType.VIDEO_RELAY,
    )
    sensor = SensorData(20.0, 50.0, 101000.0)

    frame_number = send_video_data(client, endpoint, sensor)

    assert frame_number == 23500 % 10000
    received = server.radio.receive_data(256)
    assert NodeId(received.header.source) == CLIENT
    assert NodeId(received.header.destination) == SERVER
    assert received.header.packet_id == frame_number
    assert bytes(received.data) == encode_video_frame(42, frame_number, sensor)


def test_client_gives_up_without_forward_node():
    channel = SimChannel()
    client = _sim(CLIENT, channel)
    observer = _sim(SERVER, channel)

    assert client_main(client) == 0
    beacon = observer.radio.receive_beacon()
    assert NodeId(beacon.source) == CLIENT
    assert beacon.is_valid()
    assert client.battery_level < 100


def test_client_requests_video_relay_from_found_node():
    channel = SimChannel()
    client = _sim(CLIENT, channel)
    forward = _sim(FORWARD, channel)
    forward.radio.send_beacon(Beacon.create(FORWARD, 90, -60))

    assert client_main(client) == 0

    request_packet = forward.radio.receive_data(1024)
    assert NodeId(request_packet.header.source) == CLIENT
    assert NodeId(request_packet.header.destination) == FORWARD
    request = deserialize_service_request(bytes(request_packet.data))
    assert request.service_type == ServiceType.VIDEO_RELAY
    assert request.qos.min_bandwidth == 500
    assert request.qos.max_latency == 200
    assert request.qos.reliability == 80


def test_client_streams_frames_once_path_confirmed():
    radio = _FakeRadio(
        inbox=[_service_reply(7), _path_confirm(PathStatus.SUCCESS)],
        beacons=[Beacon.create(FORWARD, 90, -60)],
    )
    hardware = _FakeHardware(radio)

    frames = client_main(hardware, max_iterations=30)

    assert frames >= 1
    assert hardware.delays == 30
    video = [p for p in radio.sent if NodeId(p.header.destination) == SERVER]
    assert len(video) == frames
    for packet in video:
        assert packet.data[0] == 1
        assert bytes(packet.data[1:5]) == (7).to_bytes(4, "big")
        assert packet.is_valid()


def test_client_times_out_when_path_fails():
    radio = _FakeRadio(
        inbox=[_service_reply(7), _path_confirm(PathStatus.QOS_NOT_MET)],
        beacons=[Beacon.create(FORWARD, 90, -60)],
    )
    hardware = _FakeHardware(radio)

    assert client_main(hardware, max_iterations=1000) == 0
    assert hardware.delays < 1000
    assert hardware.now > 30_000
    assert all(NodeId(p.header.destination) == FORWARD for p in radio.sent)


def test_client_stops_when_service_refused():
    refusal = ServiceResponse(service_id=0, server_node_id=NodeId.BROADCAST, status=1)
    radio = _FakeRadio(
        inbox=[_incoming(PacketType.SERVICE_RESPONSE, serialize_service_response(refusal))],
        beacons=[Beacon.create(FORWARD, 90, -60)],
    )
    hardware = _FakeHardware(radio)

    assert client_main(hardware, max_iterations=50) == 0
    assert len(radio.sent) == 1
    assert NodeId(radio.sent[0].header.destination) == FORWARD