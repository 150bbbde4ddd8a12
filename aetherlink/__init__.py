"""Mesh networking nodes (client, forwarder, server) with beacons, routing, service discovery and a simulated radio."""

__version__ = "0.1.0"