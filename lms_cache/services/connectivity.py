from typing import Optional
import logging

import httpx

logger = logging.getLogger(__name__)


class Connectivity:
    """Network reachability flag consulted before every remote call."""

    def __init__(self, online: bool = True):
        self._online = online

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online != self._online:
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        self._online = online

    async def probe(self, url: str, timeout: float = 5.0,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> bool:
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                await client.head(url)
            online = True
        except httpx.RequestError as e:
            logger.warning(f"Connectivity probe to {url} failed: {e}")
            online = False
        self.set_online(online)
        return online
