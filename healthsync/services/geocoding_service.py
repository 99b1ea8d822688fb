"""
healthsync/services/geocoding_service.py

Purpose: Reverse geocoding

- Converts a latitude/longitude pair into address, city, state, country, pincode
- BigDataCloud client endpoint first, OpenStreetMap Nominatim as fallback
- Never raises: unresolved fields come back as "Unknown"
"""

import httpx
from typing import Any, Dict, Optional

from healthsync.core.config import settings
from healthsync.core.logging import get_logger
from healthsync.schemas.auth import ResolvedAddress
from healthsync.utils.constants import UNKNOWN_PLACE

logger = get_logger(__name__)


def _first(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return None


def unknown_address() -> ResolvedAddress:
    return ResolvedAddress(
        address=UNKNOWN_PLACE,
        city=UNKNOWN_PLACE,
        state=UNKNOWN_PLACE,
        country=UNKNOWN_PLACE,
        pincode=UNKNOWN_PLACE,
        provider=None,
    )


class ReverseGeocoder:
    """
    Resolves coordinates through public reverse geocoding services.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None):
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.GEOCODER_TIMEOUT

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, follow_redirects=True)

    async def reverse(self, latitude: float, longitude: float) -> ResolvedAddress:
        """
        Args:
            latitude: WGS84 latitude
            longitude: WGS84 longitude

        Returns:
            ResolvedAddress with every field filled
        """
        async with self._client() as client:
            result = await self._bigdatacloud(client, latitude, longitude)
            if result is None:
                result = await self._nominatim(client, latitude, longitude)

        if result is None:
            logger.warning("Reverse geocoding failed, falling back to Unknown placeholders")
            return unknown_address()
        return result

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: Dict[str, Any],
                        headers: Optional[Dict[str, str]] = None) -> Optional[Dict[str, Any]]:
        try:
            response = await client.get(url, params=params, headers=headers)
        except httpx.TimeoutException:
            logger.warning(f"Reverse geocoding timeout: {url}")
            return None
        except httpx.RequestError as e:
            logger.warning(f"Reverse geocoding network error: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Reverse geocoding returned {response.status_code}: {url}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Reverse geocoding returned a non-JSON body: {url}")
            return None
        return data if isinstance(data, dict) else None

    async def _bigdatacloud(self, client: httpx.AsyncClient, latitude: float, longitude: float) -> Optional[ResolvedAddress]:
        data = await self._get_json(
            client,
            settings.BIGDATACLOUD_REVERSE_URL,
            {"latitude": latitude, "longitude": longitude, "localityLanguage": "en"},
        )
        # Only trusted when it names a city
        if not data or not data.get("city"):
            return None

        logger.debug("Using BigDataCloud geocoding")
        return ResolvedAddress(
            address=_first(data, "locality", "city") or UNKNOWN_PLACE,
            city=_first(data, "city", "locality") or UNKNOWN_PLACE,
            state=_first(data, "principalSubdivision") or UNKNOWN_PLACE,
            country=_first(data, "countryName") or UNKNOWN_PLACE,
            pincode=_first(data, "postcode") or UNKNOWN_PLACE,
            locality=_first(data, "locality", "neighbourhood"),
            provider="bigdatacloud",
        )

    async def _nominatim(self, client: httpx.AsyncClient, latitude: float, longitude: float) -> Optional[ResolvedAddress]:
        data = await self._get_json(
            client,
            settings.NOMINATIM_REVERSE_URL,
            {"format": "json", "lat": latitude, "lon": longitude, "zoom": 18, "addressdetails": 1},
            headers={"User-Agent": settings.GEOCODER_USER_AGENT},
        )
        if not data or "error" in data:
            return None

        addr = data.get("address") or {}
        logger.debug("Using Nominatim geocoding")
        return ResolvedAddress(
            address=_first(data, "display_name") or UNKNOWN_PLACE,
            city=_first(addr, "city", "town", "village", "suburb", "county", "state_district") or UNKNOWN_PLACE,
            state=_first(addr, "state", "region") or UNKNOWN_PLACE,
            country=_first(addr, "country") or UNKNOWN_PLACE,
            pincode=_first(addr, "postcode") or UNKNOWN_PLACE,
            locality=_first(addr, "suburb", "neighbourhood", "locality"),
            provider="nominatim",
        )
