"""
Best-effort public address lookup.

The address is recorded with each access record for information only;
a failed lookup must never block the gate.
"""

import logging

import aiohttp

from ..protocol import UNKNOWN_ADDRESS, AddressLookup

logger = logging.getLogger(__name__)


class IpifyAddressLookup(AddressLookup):
    """Ask an ipify-compatible service (``{"ip": "..."}``) for our address."""

    def __init__(self, url: str = "https://api.ipify.org?format=json", timeout: float = 5.0):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def lookup(self) -> str:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(self.url) as response:
                    if response.status != 200:
                        logger.warning(f"Address lookup returned HTTP {response.status}")
                        return UNKNOWN_ADDRESS
                    data = await response.json(content_type=None)
        except Exception as e:
            logger.warning(f"Could not fetch IP address: {e}")
            return UNKNOWN_ADDRESS

        ip = data.get("ip") if isinstance(data, dict) else None
        return str(ip) if ip else UNKNOWN_ADDRESS


class StaticAddressLookup(AddressLookup):
    """Fixed address, for server-side use where the request address is known."""

    def __init__(self, address: str = UNKNOWN_ADDRESS):
        self.address = address

    async def lookup(self) -> str:
        return self.address
