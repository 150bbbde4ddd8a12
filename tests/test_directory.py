from aetherlink.directory import (
    Capabilities,
    NetworkServiceDirectory,
    ServiceEntry,
    ServiceMetrics,
)
from aetherlink.hal import SimChannel, SimHardware
from aetherlink.protocol import (
    DataPacket,
    NodeId,
    PathStatus,
    QosRequirements,
    ServiceRequest,
    ServiceType,
    serialize_service_request,
)

CLIENT = NodeId(bytes([0xC1, 0xC2, 0xC3, 0xC4, 0xC5, 0xC6]))
FORWARD = NodeId(bytes([0xF1, 0xF2, 0xF3, 0xF4, 0xF5, 0xF6]))
SERVER = NodeId(bytes([0x5A, 0x5B, 0x5C, 0x5D, 0x5E, 0x5F]))
OTHER = NodeId(bytes([0x0A, 0x0B, 0x0C, 0x0D, 0x0E, 0x0F]))

CAPS = Capabilities(max_bandwidth=1000, min_latency=50, reliability=95, battery_level=80)
METRICS = ServiceMetrics(success_rate=100, avg_response_time=20, signal_strength=-60)
QOS = QosRequirements(min_bandwidth=500, max_latency=100, reliability=80)


def _node(node_id, channel):
    return SimHardware(node_id, channel, sleep=lambda seconds: None)


def test_service_discovery_and_path_establishment():
    channel = SimChannel()
    client = _node(CLIENT, channel)
    forward = _node(FORWARD, channel)
    server = _node(SERVER, channel)

    directory = NetworkServiceDirectory()
    assert directory.update_service(SERVER, ServiceType.VIDEO_RELAY, 20, CAPS, METRICS, 0)

    request = ServiceRequest(ServiceType.VIDEO_RELAY, QOS, 60)
    encoded = serialize_service_request(request)
    assert len(encoded) > 0
    client.radio.send_data(DataPacket.create(CLIENT, FORWARD, 1, encoded))

    received = forward.radio.receive_data(256)
    assert received.header.source == CLIENT.octets
    assert received.header.destination == FORWARD.octets

    best = directory.find_best_service(ServiceType.VIDEO_RELAY, QOS)
    assert best.node_id == SERVER

    response = bytes([0, 0, 0, 1]) + SERVER.octets + bytes([0])
    forward.radio.send_data(DataPacket.create(FORWARD, CLIENT, 1, response))

    path = (
        CLIENT.octets
        + bytes([ServiceType.VIDEO_RELAY])
        + QOS.min_bandwidth.to_bytes(2, "big")
        + QOS.max_latency.to_bytes(2, "big")
        + bytes([QOS.reliability])
    )
    forward.radio.send_data(DataPacket.create(FORWARD, SERVER, 2, path))

    # The channel is shared, so the server first sees the response meant for the client.
    first = server.radio.receive_data(256)
    assert first.header.destination == CLIENT.octets
    received_path = server.radio.receive_data(256)
    assert received_path.header.source == FORWARD.octets
    assert received_path.header.destination == SERVER.octets
    assert received_path.data == path

    confirm = CLIENT.octets + bytes([PathStatus.SUCCESS, 1])
    server.radio.send_data(DataPacket.create(SERVER, FORWARD, 2, confirm))

    received_confirm = forward.radio.receive_data(256)
    assert received_confirm.header.source == SERVER.octets
    assert received_confirm.header.destination == FORWARD.octets

    forwarded = confirm[:7] + bytes([2])
    forward.radio.send_data(DataPacket.create(FORWARD, CLIENT, 2, forwarded))

    client_confirm = client.radio.receive_data(256)
    assert client_confirm.header.source == FORWARD.octets
    assert client_confirm.header.destination == CLIENT.octets
    assert client_confirm.data[6] == PathStatus.SUCCESS
    assert client_confirm.data[7] == 2


def test_score_pinned_value():
    entry = ServiceEntry(SERVER, ServiceType.VIDEO_RELAY, 20, CAPS, 0, METRICS)
    assert entry.score(QOS) == 463


def test_score_zero_when_requirements_unmet():
    entry = ServiceEntry(SERVER, ServiceType.VIDEO_RELAY, 20, CAPS, 0, METRICS)
    assert entry.score(QosRequirements(2000, 100, 80)) == 0
    assert entry.score(QosRequirements(500, 10, 80)) == 0
    assert entry.score(QosRequirements(500, 100, 99)) == 0


def test_best_service_prefers_higher_score():
    directory = NetworkServiceDirectory()
    weak = Capabilities(600, 90, 85, 10)
    directory.update_service(OTHER, ServiceType.VIDEO_RELAY, 90, weak, METRICS, 0)
    directory.update_service(SERVER, ServiceType.VIDEO_RELAY, 10, CAPS, METRICS, 0)
    assert directory.find_best_service(ServiceType.VIDEO_RELAY, QOS).node_id == SERVER


def test_best_service_none_when_nothing_qualifies():
    directory = NetworkServiceDirectory()
    directory.update_service(SERVER, ServiceType.VIDEO_RELAY, 0, CAPS, METRICS, 0)
    assert directory.find_best_service(ServiceType.AUDIO_RELAY, QOS) is None
    assert directory.find_best_service(
        ServiceType.VIDEO_RELAY, QosRequirements(5000, 100, 80)
    ) is None


def test_update_existing_entry_does_not_grow():
    directory = NetworkServiceDirectory()
    directory.update_service(SERVER, ServiceType.VIDEO_RELAY, 20, CAPS, METRICS, 0)
    directory.update_service(SERVER, ServiceType.VIDEO_RELAY, 50, CAPS, METRICS, 1000)
    assert len(directory) == 1
    entry = directory.services_by_type(ServiceType.VIDEO_RELAY)[0]
    assert (entry.load, entry.last_update_time) == (50, 1000)


def test_full_directory_rejects_new_entries():
    directory = NetworkServiceDirectory(capacity=2)
    assert directory.update_service(SERVER, ServiceType.STORAGE, 0, CAPS, METRICS, 0)
    assert directory.update_service(OTHER, ServiceType.STORAGE, 0, CAPS, METRICS, 0)
    assert not directory.update_service(CLIENT, ServiceType.STORAGE, 0, CAPS, METRICS, 0)
    assert len(directory) == 2


def test_services_by_type_filters():
    directory = NetworkServiceDirectory()
    directory.update_service(SERVER, ServiceType.STORAGE, 0, CAPS, METRICS, 0)
    directory.update_service(OTHER, ServiceType.GATEWAY, 0, CAPS, METRICS, 0)
    directory.update_service(CLIENT, ServiceType.STORAGE, 0, CAPS, METRICS, 0)
    nodes = [entry.node_id for entry in directory.services_by_type(ServiceType.STORAGE)]
    assert nodes == [SERVER, CLIENT]


def test_register_find_and_remove():
    directory = NetworkServiceDirectory()
    directory.register_service(SERVER, ServiceType.GATEWAY)
    assert directory.find_service(ServiceType.GATEWAY) == SERVER
    assert directory.find_service(ServiceType.STORAGE) is None
    entry = directory.services_by_type(ServiceType.GATEWAY)[0]
    assert entry.capabilities.max_bandwidth == 1000
    assert entry.metrics.signal_strength == -70
    directory.remove_service(SERVER, ServiceType.GATEWAY)
    assert len(directory) == 0
    assert directory.find_service(ServiceType.GATEWAY) is None


def test_cleanup_expires_and_is_throttled():
    directory = NetworkServiceDirectory()
    directory.update_service(SERVER, ServiceType.STORAGE, 0, CAPS, METRICS, 0)
    directory.cleanup(20_000)
    assert len(directory) == 1
    directory.cleanup(310_000)
    assert len(directory) == 0

    directory.update_service(SERVER, ServiceType.STORAGE, 0, CAPS, METRICS, 0)
    directory.cleanup(320_000)
    assert len(directory) == 1
    directory.cleanup(340_000)
    assert len(directory) == 0


def test_cleanup_keeps_fresh_entries():
    directory = NetworkServiceDirectory()
    directory.update_service(SERVER, ServiceType.STORAGE, 0, CAPS, METRICS, 100_000)
    directory.update_service(OTHER, ServiceType.STORAGE, 0, CAPS, METRICS, 0)
    directory.cleanup(400_000)
    assert directory.find_service(ServiceType.STORAGE) == SERVER
    assert len(directory) == 1