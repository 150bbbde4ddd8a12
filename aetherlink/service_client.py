"""Client side of service negotiation with a forwarding node."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from aetherlink.hal import Hardware, SimulatorError
from aetherlink.protocol import (
    DataPacket,
    NodeId,
    PacketType,
    QosRequirements,
    ServiceRequest,
    ServiceType,
    deserialize_service_response,
    serialize_service_request,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 10
RETRY_DELAY_MS = 1000
RX_SIZE = 1024
STATUS_SUCCESS = 0
CLOSE_REASON_NORMAL = 0


@dataclass
class ServiceEndpoint:
    """A remote service the client may use."""

    service_id: int
    server_id: NodeId
    relay_id: NodeId
    service_type: ServiceType
    hops: int = 0


def request_service(
    hardware: Hardware,
    forward_id: NodeId,
    service_type: ServiceType,
    qos: QosRequirements,
    expiry_time: int,
) -> ServiceEndpoint | None:
    """Ask ``forward_id`` for a service and wait up to ten seconds for the answer."""
    logger.info("requesting service %s via %s", service_type.name, forward_id)
    payload = serialize_service_request(ServiceRequest(service_type, qos, expiry_time))
    packet = DataPacket.create(hardware.node_id, forward_id, 0, payload)
    radio = hardware.radio
    try:
        radio.send_data(packet)
    except SimulatorError as exc:
        logger.warning("failed to send service request: %s", exc)
        return None

    logger.info("service request sent, waiting for a response")
    for _ in range(MAX_RETRIES):
        try:
            reply = radio.receive_data(RX_SIZE)
        except SimulatorError:
            reply = None
        if (
            reply is not None
            and NodeId(reply.header.source) == forward_id
            and reply.header.packet_type == PacketType.SERVICE_RESPONSE
        ):
            response = deserialize_service_response(reply.data)
            if response is not None:
                if response.status != STATUS_SUCCESS:
                    logger.warning("service refused, status %d", response.status)
                    return None
                logger.info(
                    "service granted: server %s, service id %d",
                    response.server_node_id,
                    response.service_id,
                )
                return ServiceEndpoint(
                    service_id=response.service_id,
                    server_id=response.server_node_id,
                    relay_id=forward_id,
                    service_type=service_type,
                )
        hardware.delay_ms(RETRY_DELAY_MS)

    logger.warning("timed out waiting for a service response")
    return None


def close_service(hardware: Hardware, endpoint: ServiceEndpoint) -> bool:
    """Tell the relay that the service is no longer used; False if sending failed."""
    logger.info(
        "closing service %d on server %s", endpoint.service_id, endpoint.server_id
    )
    payload = endpoint.service_id.to_bytes(4, "big") + bytes([CLOSE_REASON_NORMAL, 0])
    packet = DataPacket.create(hardware.node_id, endpoint.relay_id, 0, payload)
    try:
        hardware.radio.send_data(packet)
    except SimulatorError as exc:
        logger.warning("failed to send service close request: %s", exc)
        return False
    return True