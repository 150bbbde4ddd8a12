# aetherlink

A small mesh-networking stack for low-power nodes, together with an
in-process simulated radio channel so that whole networks can be built
and exercised inside one Python process.

A network has three kinds of node:

- **client** (`aetherlink.client`): finds a forwarding node by beacon,
  asks it for a video relay service with quality-of-service requirements,
  waits for the relay path to be confirmed and then sends a data frame
  every half second.
- **forward** (`aetherlink.forward`): learns direct routes and
  video-relay providers from received beacons, picks the best provider
  for each service request, sends path-establish requests, passes path
  confirmations on to clients and forwards packets not addressed to it.
  It also takes part in a master-server election.
- **server** (`aetherlink.server`): broadcasts beacons, stores sensor
  readings in an in-memory ring buffer, answers queries and runs queued
  commands (query, configure, clear, reboot).

There are no third-party dependencies.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Commands

Each node kind has a command that starts it on simulated hardware:

```
aetherlink-server [--iterations N]
aetherlink-forward [--iterations N]
aetherlink-client [--iterations N]
```

`--iterations N` bounds the number of main-loop passes; without it the
server and forwarder loop until interrupted, and the client runs until it
gives up (no forwarding node found, no service granted, or no path
confirmed within thirty seconds). Progress is written through `logging`
at INFO level.

## What the package does not do

- It does not drive any real radio. The only `Radio`/`Hardware`
  implementations are the simulated `SimRadio` and `SimHardware`.
- Each command creates its own private `SimChannel`, so nodes started as
  separate commands cannot hear each other. To run a network, create the
  nodes on one shared `SimChannel` in the same process (see below).
- Sensor records are kept in memory only; nothing is written to disk.
- The configure and reboot commands are only acknowledged; nothing is
  reconfigured or restarted.
- The election does not weigh the replies it receives: the node that
  starts an election declares itself master when the wait is over.

## Library overview

| Module | Contents |
| --- | --- |
| `aetherlink.checksum` | `calculate_checksum` (CRC-16-CCITT, polynomial 0x1021, initial value 0xFFFF) and `verify_checksum` |
| `aetherlink.protocol` | `NodeId`, `Beacon`, `DataHeader`, `DataPacket`, the `PacketType`, `ServiceType` and `PathStatus` enums, `QosRequirements`, `ServiceRequest`, `ServiceResponse` and their wire serialisers |
| `aetherlink.hal` | the `Radio` and `Hardware` interfaces and the simulator: `SimChannel`, `SimRadio`, `SimHardware`, `SimulatorError` |
| `aetherlink.routing` | `ForwardingEngine`, a 32-slot table of direct routes, and `RouteEntry` |
| `aetherlink.directory` | `NetworkServiceDirectory` (32 slots) with QoS scoring of `ServiceEntry` items, `Capabilities`, `ServiceMetrics` |
| `aetherlink.election` | `ElectionProtocol`, `ElectionMessageType`, `ElectionState` |
| `aetherlink.storage` | `CircularBuffer` (1024 slots) of `SensorRecord` items |
| `aetherlink.commands` | `CommandProcessor`, `Command`, `CommandType` |
| `aetherlink.sensors` | `SensorData`, `read_sensors`, `init_sensors`, `shutdown_sensors` |
| `aetherlink.discovery` | `find_server`, `send_discovery_beacon`, `receive_server_response` |
| `aetherlink.service_client` | `ServiceEndpoint`, `request_service`, `close_service` |
| `aetherlink.server` | `ServerNode` and `main` |
| `aetherlink.forward` | `ForwardNode` and `main` |
| `aetherlink.client` | `client_main`, `send_video_data`, `encode_video_frame` and `main` |

### Checksums

```python
from aetherlink.checksum import calculate_checksum, verify_checksum

data = bytes([0x01, 0x02, 0x03, 0x04, 0x05])
crc = calculate_checksum(data)
assert verify_checksum(data, crc)
assert not verify_checksum(data, crc + 1)
```

### Nodes on a shared simulated channel

A `SimChannel` is the shared medium. A node never receives what it sent
itself; otherwise packets and beacons are taken oldest first.

```python
from aetherlink.hal import SimChannel, SimHardware
from aetherlink.protocol import DataPacket, NodeId

channel = SimChannel()
sender = SimHardware(NodeId(bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06])), channel)
receiver = SimHardware(NodeId(bytes([0x11, 0x22, 0x33, 0x44, 0x55, 0x66])), channel)

packet = DataPacket.create(sender.node_id, receiver.node_id, 1, b"\x01\x02\x03")
sender.radio.send_data(packet)

received = receiver.radio.receive_data()
assert received.data == b"\x01\x02\x03"
assert received.is_valid()
```

`ServerNode`, `ForwardNode` and `client_main` accept any such hardware;
`ServerNode.step()` and `ForwardNode.step()` run one pass of their main
loop, and `run(max_iterations)` runs several.

### Choosing a service provider

```python
from aetherlink.directory import Capabilities, NetworkServiceDirectory, ServiceMetrics
from aetherlink.protocol import NodeId, QosRequirements, ServiceType

directory = NetworkServiceDirectory()
server = NodeId(bytes([0x5E, 0x5E, 0x5E, 0x5E, 0x5E, 0x01]))
directory.update_service(
    server, ServiceType.VIDEO_RELAY, 20,
    Capabilities(max_bandwidth=1000, min_latency=50, reliability=95, battery_level=80),
    ServiceMetrics(success_rate=100, avg_response_time=20, signal_strength=-60),
    0,
)
qos = QosRequirements(min_bandwidth=500, max_latency=100, reliability=80)
assert directory.find_best_service(ServiceType.VIDEO_RELAY, qos).node_id == server
```

An entry that misses any of the bandwidth, latency or reliability
requirements scores 0 and is never chosen. Entries not refreshed for five
minutes are dropped by `cleanup`.

### Wire formats

A service request is eight bytes: the service type, the minimum bandwidth
and maximum latency as big-endian 16-bit values, the reliability
percentage, and the upper 16 bits of the 32-bit expiry time. A service
response is eleven bytes: a big-endian 32-bit service id, the six-byte
server node id and a status byte (0 for success).
`serialize_service_request` and `serialize_service_response` return these
bytes; `deserialize_service_request` and `deserialize_service_response`
return `None` for buffers that are too short (and, for requests, for an
unknown service type).

A client video frame (`encode_video_frame`) is 21 bytes: the marker
`0x01`, the big-endian 32-bit service id and frame number, then
temperature, humidity and pressure as big-endian 32-bit floats.