"""Network helpers."""

from .address import IpifyAddressLookup, StaticAddressLookup

__all__ = ["IpifyAddressLookup", "StaticAddressLookup"]
