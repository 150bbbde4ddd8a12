"""Directory of services offered by nodes, with QoS-based selection."""

from __future__ import annotations

from dataclasses import dataclass

from aetherlink.protocol import NodeId, QosRequirements, ServiceType

SERVICE_EXPIRY_MS = 300_000
CLEANUP_INTERVAL_MS = 30_000
DIRECTORY_SIZE = 32


@dataclass(frozen=True)
class Capabilities:
    max_bandwidth: int  # kbps
    min_latency: int  # ms
    reliability: int  # percent
    battery_level: int  # percent


@dataclass(frozen=True)
class ServiceMetrics:
    success_rate: int  # percent
    avg_response_time: int  # ms
    signal_strength: int  # dBm


_DEFAULT_CAPABILITIES = Capabilities(
    max_bandwidth=1000, min_latency=100, reliability=90, battery_level=100
)
_DEFAULT_METRICS = ServiceMetrics(success_rate=100, avg_response_time=50, signal_strength=-70)


@dataclass
class ServiceEntry:
    node_id: NodeId
    service_type: ServiceType
    load: int  # percent
    capabilities: Capabilities
    last_update_time: int
    metrics: ServiceMetrics

    def score(self, qos: QosRequirements) -> int:
        """Rate how well this service meets ``qos``; 0 when it falls short."""
        caps = self.capabilities
        if caps.max_bandwidth < qos.min_bandwidth:
            return 0
        if caps.min_latency > qos.max_latency:
            return 0
        if caps.reliability < qos.reliability:
            return 0

        score = 40 * (1 + min(caps.max_bandwidth - qos.min_bandwidth, 1000) // 100)
        score += 30 * (1 + min(qos.max_latency - caps.min_latency, 500) // 50)
        score += 20 * (1 + min(caps.reliability - qos.reliability, 50) // 10)
        score += 10 * (100 - self.load) // 10
        score += 5 * caps.battery_level // 10

        signal = self.metrics.signal_strength
        if signal > -60:
            score += 5
        elif signal > -75:
            score += 3
        elif signal > -90:
            score += 1
        return score


class NetworkServiceDirectory:
    """Fixed-capacity table of service entries."""

    def __init__(self, capacity: int = DIRECTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError("a service directory needs at least one slot")
        self._slots: list[ServiceEntry | None] = [None] * capacity
        self._last_cleanup_time = 0

    def _entries(self):
        return (entry for entry in self._slots if entry is not None)

    def _index_of(self, node_id: NodeId, service_type: ServiceType) -> int | None:
        return next(
            (
                position
                for position, entry in enumerate(self._slots)
                if entry is not None
                and entry.node_id == node_id
                and entry.service_type == service_type
            ),
            None,
        )

    def cleanup(self, current_time: int) -> None:
        """Drop entries not updated for five minutes, at most every 30 seconds."""
        if current_time - self._last_cleanup_time < CLEANUP_INTERVAL_MS:
            return
        self._slots = [
            entry
            if entry is not None
            and current_time - entry.last_update_time <= SERVICE_EXPIRY_MS
            else None
            for entry in self._slots
        ]
        self._last_cleanup_time = current_time

    def find_best_service(
        self, service_type: ServiceType, qos: QosRequirements
    ) -> ServiceEntry | None:
        """Return the highest-scoring entry of ``service_type``; the first wins ties."""
        best, best_score = None, 0
        for entry in self.services_by_type(service_type):
            score = entry.score(qos)
            if score > best_score:
                best, best_score = entry, score
        return best

    def update_service(
        self,
        node_id: NodeId,
        service_type: ServiceType,
        load: int,
        capabilities: Capabilities,
        metrics: ServiceMetrics,
        current_time: int,
    ) -> bool:
        """Add or refresh an entry; False when the directory is full."""
        index = self._index_of(node_id, service_type)
        if index is not None:
            entry = self._slots[index]
            entry.load = load
            entry.capabilities = capabilities
            entry.metrics = metrics
            entry.last_update_time = current_time
            return True
        free = next(
            (position for position, entry in enumerate(self._slots) if entry is None),
            None,
        )
        if free is None:
            return False
        self._slots[free] = ServiceEntry(
            node_id=node_id,
            service_type=service_type,
            load=load,
            capabilities=capabilities,
            last_update_time=current_time,
            metrics=metrics,
        )
        return True

    def services_by_type(self, service_type: ServiceType) -> list[ServiceEntry]:
        return [entry for entry in self._entries() if entry.service_type == service_type]

    def register_service(self, node_id: NodeId, service_type: ServiceType) -> bool:
        """Register a service with default capabilities and metrics."""
        return self.update_service(
            node_id, service_type, 0, _DEFAULT_CAPABILITIES, _DEFAULT_METRICS, 0
        )

    def find_service(self, service_type: ServiceType) -> NodeId | None:
        """Return the first node offering ``service_type``, ignoring QoS."""
        return next(
            (
                entry.node_id
                for entry in self._entries()
                if entry.service_type == service_type
            ),
            None,
        )

    def remove_service(self, node_id: NodeId, service_type: ServiceType) -> None:
        index = self._index_of(node_id, service_type)
        if index is not None:
            self._slots[index] = None

    def __len__(self) -> int:
        return sum(1 for _ in self._entries())