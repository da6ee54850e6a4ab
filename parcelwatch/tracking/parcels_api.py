"""
Tracking provider integration.
Fetches the per-provider tracking timelines for a parcel from the parcels service.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional
import aiohttp
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from parcelwatch.exceptions import ProviderError, TrackingNotFoundError
from parcelwatch.models import TrackingInfo


_TRACKING_INFOS = TypeAdapter(list[TrackingInfo])


class ProviderClient(ABC):
    """Base class for tracking info providers."""

    @abstractmethod
    async def get_tracking_info(self, tracking_number: str) -> list[TrackingInfo]:
        """
        Get the current tracking info blocks for a parcel.

        Raises:
            TrackingNotFoundError: provider does not know the parcel
            ProviderError: any other failure
        """
        pass

    async def close(self):
        """Release any held resources."""
        pass


class ParcelsAPI(ProviderClient):
    """
    Client for the parcels tracking service.

    GET {base_url}/trackingInfo/?trackingNumber=<number> returns a JSON list
    of tracking info blocks, or 404 when the parcel is unknown.
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self):
        """Ensure HTTP session is created."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )

    async def close(self):
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def get_tracking_info(self, tracking_number: str) -> list[TrackingInfo]:
        """Get tracking info from the parcels service."""
        await self._ensure_session()

        url = f"{self.base_url}/trackingInfo/"

        try:
            async with self._session.get(
                url,
                params={"trackingNumber": tracking_number},
            ) as resp:
                if resp.status == 404:
                    raise TrackingNotFoundError(
                        f"No tracking info for {tracking_number}",
                        tracking_number=tracking_number,
                    )

                body = await resp.read()

                if resp.status != 200:
                    raise ProviderError(
                        f"Parcels service returned {resp.status}: {body[:200].decode(errors='replace')}",
                        tracking_number=tracking_number,
                        status_code=resp.status,
                    )

        except aiohttp.ClientError as e:
            raise ProviderError(
                f"Network error fetching {tracking_number}: {e}",
                tracking_number=tracking_number,
            ) from e
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"Timed out fetching {tracking_number}",
                tracking_number=tracking_number,
            ) from e

        return self._parse_response(tracking_number, body)

    def _parse_response(self, tracking_number: str, body: bytes) -> list[TrackingInfo]:
        """Parse the service's JSON payload."""
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProviderError(
                f"Tracking info for {tracking_number} is not valid UTF-8",
                tracking_number=tracking_number,
            ) from e

        if text.strip() == "null":
            return []

        try:
            infos = _TRACKING_INFOS.validate_json(text)
        except ValidationError as e:
            logger.debug(f"Unparseable tracking info body for {tracking_number}: {text[:500]}")
            raise ProviderError(
                f"Failed to parse tracking info for {tracking_number}: {e.error_count()} error(s)",
                tracking_number=tracking_number,
            ) from e

        logger.debug(f"Fetched {len(infos)} tracking info block(s) for {tracking_number}")
        return infos
