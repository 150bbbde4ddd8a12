"""Dynamic routing table used by forwarding nodes."""

from __future__ import annotations

from dataclasses import dataclass

from aetherlink.protocol import NodeId

ROUTE_EXPIRY_MS = 300_000
ROUTE_TABLE_SIZE = 32


@dataclass
class RouteEntry:
    destination: NodeId
    next_hop: NodeId
    metric: int  # signal strength
    timestamp: int


class ForwardingEngine:
    """Fixed-capacity table of direct routes keyed by destination."""

    def __init__(self, node_id: NodeId, capacity: int = ROUTE_TABLE_SIZE) -> None:
        if capacity < 1:
            raise ValueError("a routing table needs at least one slot")
        self.node_id = node_id
        self._slots: list[RouteEntry | None] = [None] * capacity
        self._route_time = 0

    def _index_of(self, destination: NodeId) -> int | None:
        return next(
            (
                position
                for position, route in enumerate(self._slots)
                if route is not None and route.destination == destination
            ),
            None,
        )

    def _free_slot(self) -> int | None:
        return next(
            (position for position, route in enumerate(self._slots) if route is None),
            None,
        )

    def cleanup(self, current_time: int) -> None:
        """Drop routes older than five minutes."""
        self._slots = [
            route
            if route is not None and current_time - route.timestamp <= ROUTE_EXPIRY_MS
            else None
            for route in self._slots
        ]

    def update_route(self, destination: NodeId, metric: int) -> None:
        """Add or refresh a direct route; routes to this node itself are ignored."""
        if destination == self.node_id:
            return
        index = self._index_of(destination)
        if index is not None:
            route = self._slots[index]
            route.metric = metric
            route.timestamp = self._route_time
            return
        entry = RouteEntry(destination, destination, metric, self._route_time)
        free = self._free_slot()
        # A full table gives up its first slot.
        self._slots[0 if free is None else free] = entry

    def get_next_hop(self, destination: NodeId) -> NodeId | None:
        index = self._index_of(destination)
        return None if index is None else self._slots[index].next_hop

    def remove_route(self, destination: NodeId) -> None:
        index = self._index_of(destination)
        if index is not None:
            self._slots[index] = None

    def clear(self) -> None:
        self._slots = [None] * len(self._slots)

    def is_empty(self) -> bool:
        return len(self) == 0

    def __len__(self) -> int:
        return sum(route is not None for route in self._slots)