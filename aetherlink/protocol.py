"""Wire formats: node identifiers, beacons, data packets and service messages."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar

from aetherlink.checksum import calculate_checksum

MAX_PACKET_SIZE = 256
PROTOCOL_VERSION = 1
NODE_ID_LEN = 6


class PacketType(IntEnum):
    BEACON = 0x01
    DATA = 0x02
    ACK = 0x03
    CONTROL = 0x04
    SERVICE_REQUEST = 0x05
    SERVICE_RESPONSE = 0x06
    PATH_ESTABLISH = 0x07
    PATH_CONFIRM = 0x08


class ServiceType(IntEnum):
    STORAGE = 0x01
    PROCESSING = 0x02
    GATEWAY = 0x03
    VIDEO_RELAY = 0x04
    AUDIO_RELAY = 0x05
    DATA_RELAY = 0x06
    SENSOR_COLLECTION = 0x07


class PathStatus(IntEnum):
    SUCCESS = 0x00
    NO_RESOURCE = 0x01
    QOS_NOT_MET = 0x02
    TIMEOUT = 0x03
    SERVER_BUSY = 0x04


def _node_bytes(value) -> bytes:
    if isinstance(value, int):
        raise TypeError("a node identifier is a sequence of bytes, not an int")
    raw = bytes(value)
    if len(raw) != NODE_ID_LEN:
        raise ValueError(f"a node identifier has {NODE_ID_LEN} bytes, got {len(raw)}")
    return raw


def _packet_type(value: int) -> int:
    try:
        return PacketType(value)
    except ValueError:
        return value


@dataclass(frozen=True, repr=False)
class NodeId:
    """Six-byte address of a node."""

    octets: bytes
    BROADCAST: ClassVar[NodeId]

    def __post_init__(self) -> None:
        object.__setattr__(self, "octets", _node_bytes(self.octets))

    def is_broadcast(self) -> bool:
        return self.octets == b"\xff" * NODE_ID_LEN

    def __bytes__(self) -> bytes:
        return self.octets

    def __str__(self) -> str:
        return ":".join(f"{octet:02X}" for octet in self.octets)

    def __repr__(self) -> str:
        return f"NodeId({self})"


NodeId.BROADCAST = NodeId(b"\xff" * NODE_ID_LEN)


@dataclass(frozen=True)
class QosRequirements:
    min_bandwidth: int  # kbps
    max_latency: int  # ms
    reliability: int  # percent


@dataclass(frozen=True)
class ServiceRequest:
    service_type: ServiceType
    qos: QosRequirements
    expiry_time: int  # seconds


@dataclass(frozen=True)
class ServiceResponse:
    service_id: int
    server_node_id: NodeId
    status: int  # 0 success, 1 failure, 2 partial


_BEACON = struct.Struct("<BB6sBbB3sH")


@dataclass
class Beacon:
    """Network beacon used for discovery and topology upkeep."""

    source: bytes
    battery_level: int
    rssi: int
    version: int = PROTOCOL_VERSION
    packet_type: int = PacketType.BEACON
    hop_count: int = 0
    reserved: bytes = bytes(3)
    checksum: int = 0

    SIZE: ClassVar[int] = _BEACON.size

    def __post_init__(self) -> None:
        self.source = _node_bytes(self.source)
        self.reserved = bytes(self.reserved)
        if len(self.reserved) != 3:
            raise ValueError("the reserved field has 3 bytes")

    @classmethod
    def create(cls, source: NodeId, battery_level: int, rssi: int) -> Beacon:
        beacon = cls(source=bytes(source), battery_level=battery_level, rssi=rssi)
        beacon.update_checksum()
        return beacon

    def _pack(self, checksum: int) -> bytes:
        try:
            return _BEACON.pack(
                self.version,
                self.packet_type,
                self.source,
                self.battery_level,
                self.rssi,
                self.hop_count,
                self.reserved,
                checksum,
            )
        except struct.error as exc:
            raise ValueError(f"beacon field out of range: {exc}") from exc

    def update_checksum(self) -> None:
        self.checksum = calculate_checksum(self._pack(0))

    def is_valid(self) -> bool:
        return calculate_checksum(self._pack(0)) == self.checksum

    def to_bytes(self) -> bytes:
        return self._pack(self.checksum)

    @classmethod
    def from_bytes(cls, data) -> Beacon:
        raw = bytes(data)
        if len(raw) < cls.SIZE:
            raise ValueError(f"a beacon needs {cls.SIZE} bytes, got {len(raw)}")
        (version, packet_type, source, battery, rssi, hops, reserved, checksum) = (
            _BEACON.unpack_from(raw)
        )
        return cls(
            source=source,
            battery_level=battery,
            rssi=rssi,
            version=version,
            packet_type=_packet_type(packet_type),
            hop_count=hops,
            reserved=reserved,
            checksum=checksum,
        )


_HEADER = struct.Struct("<BB6s6sHBBHH")


@dataclass
class DataHeader:
    """Fixed-size header that precedes every data payload."""

    source: bytes
    destination: bytes
    packet_id: int
    data_length: int
    version: int = PROTOCOL_VERSION
    packet_type: int = PacketType.DATA
    total_fragments: int = 1
    fragment_index: int = 0
    checksum: int = 0

    SIZE: ClassVar[int] = _HEADER.size

    def __post_init__(self) -> None:
        self.source = _node_bytes(self.source)
        self.destination = _node_bytes(self.destination)

    def _pack(self, checksum: int) -> bytes:
        try:
            return _HEADER.pack(
                self.version,
                self.packet_type,
                self.source,
                self.destination,
                self.packet_id,
                self.total_fragments,
                self.fragment_index,
                self.data_length,
                checksum,
            )
        except struct.error as exc:
            raise ValueError(f"header field out of range: {exc}") from exc

    def to_bytes(self) -> bytes:
        return self._pack(self.checksum)

    @classmethod
    def from_bytes(cls, data) -> DataHeader:
        raw = bytes(data)
        if len(raw) < cls.SIZE:
            raise ValueError(f"a data header needs {cls.SIZE} bytes, got {len(raw)}")
        (version, packet_type, source, destination, packet_id, total, index, length,
         checksum) = _HEADER.unpack_from(raw)
        return cls(
            source=source,
            destination=destination,
            packet_id=packet_id,
            data_length=length,
            version=version,
            packet_type=_packet_type(packet_type),
            total_fragments=total,
            fragment_index=index,
            checksum=checksum,
        )


@dataclass
class DataPacket:
    """A header together with its payload."""

    header: DataHeader
    data: bytes

    MAX_DATA: ClassVar[int] = MAX_PACKET_SIZE - DataHeader.SIZE

    def __post_init__(self) -> None:
        self.data = bytes(self.data)

    @classmethod
    def create(cls, source: NodeId, destination: NodeId, packet_id: int, data) -> DataPacket:
        payload = bytes(data)
        if len(payload) > cls.MAX_DATA:
            raise ValueError(
                f"payload of {len(payload)} bytes exceeds the limit of {cls.MAX_DATA}"
            )
        header = DataHeader(
            source=bytes(source),
            destination=bytes(destination),
            packet_id=packet_id,
            data_length=len(payload),
        )
        packet = cls(header, payload)
        packet.update_checksum()
        return packet

    def _expected_checksum(self) -> int:
        return calculate_checksum(self.header._pack(0)) ^ calculate_checksum(self.data)

    def update_checksum(self) -> None:
        self.header.checksum = self._expected_checksum()

    def is_valid(self) -> bool:
        return self._expected_checksum() == self.header.checksum

    def to_bytes(self) -> bytes:
        return self.header.to_bytes() + self.data

    @classmethod
    def from_bytes(cls, data) -> DataPacket:
        raw = bytes(data)
        header = DataHeader.from_bytes(raw)
        end = DataHeader.SIZE + header.data_length
        if end > len(raw):
            raise ValueError(
                f"header announces {header.data_length} payload bytes, "
                f"only {len(raw) - DataHeader.SIZE} present"
            )
        return cls(header, raw[DataHeader.SIZE:end])


# The expiry time travels as the upper 16 bits of its 32-bit value.
_REQUEST = struct.Struct(">BHHBH")
_RESPONSE = struct.Struct(">I6sB")


def serialize_service_request(request: ServiceRequest) -> bytes:
    """Encode a service request into its 8-byte wire form."""
    if not 0 <= request.expiry_time <= 0xFFFFFFFF:
        raise ValueError("expiry time must fit in 32 bits")
    try:
        return _REQUEST.pack(
            request.service_type,
            request.qos.min_bandwidth,
            request.qos.max_latency,
            request.qos.reliability,
            request.expiry_time >> 16,
        )
    except struct.error as exc:
        raise ValueError(f"service request field out of range: {exc}") from exc


def deserialize_service_request(buffer) -> ServiceRequest | None:
    """Decode a service request; None if too short or of unknown service type."""
    raw = bytes(buffer)
    if len(raw) < _REQUEST.size:
        return None
    kind, bandwidth, latency, reliability, expiry_high = _REQUEST.unpack_from(raw)
    try:
        service_type = ServiceType(kind)
    except ValueError:
        return None
    return ServiceRequest(
        service_type=service_type,
        qos=QosRequirements(bandwidth, latency, reliability),
        expiry_time=expiry_high << 16,
    )


def serialize_service_response(response: ServiceResponse) -> bytes:
    """Encode a service response into its 11-byte wire form."""
    try:
        return _RESPONSE.pack(
            response.service_id, bytes(response.server_node_id), response.status
        )
    except struct.error as exc:
        raise ValueError(f"service response field out of range: {exc}") from exc


def deserialize_service_response(buffer) -> ServiceResponse | None:
    """Decode a service response; None if the buffer is too short."""
    raw = bytes(buffer)
    if len(raw) < _RESPONSE.size:
        return None
    service_id, node, status = _RESPONSE.unpack_from(raw)
    return ServiceResponse(service_id=service_id, server_node_id=NodeId(node), status=status)