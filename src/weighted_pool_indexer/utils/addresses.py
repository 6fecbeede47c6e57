"""Address normalisation for address-keyed entities."""

from __future__ import annotations


def normalize_address(address: object) -> str:
    """Lowercase hex form used as the id of address-keyed entities."""

    if isinstance(address, (bytes, bytearray)):
        return "0x" + bytes(address).hex()
    return str(address).strip().lower()


__all__ = ["normalize_address"]
