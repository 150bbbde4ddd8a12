"""CRC-16 checksums used by every wire format in the network."""

from binascii import crc_hqx

_INITIAL_VALUE = 0xFFFF


def calculate_checksum(data) -> int:
    """Return the CRC-16-CCITT (poly 0x1021, init 0xFFFF, unreflected) of ``data``."""
    return crc_hqx(bytes(data), _INITIAL_VALUE)


def verify_checksum(data, checksum: int) -> bool:
    """Tell whether ``checksum`` matches the CRC-16 of ``data``."""
    return calculate_checksum(data) == checksum