"""
geocoding.py — Reverse geocoding of hazard locations for alert messages.

Uses the OpenStreetMap Nominatim `/reverse` endpoint:

    GET {NOMINATIM_URL}?format=json&lat=…&lon=…&zoom=14&addressdetails=1
    User-Agent: {GEOCODE_USER_AGENT}          (required by the usage policy)

describe() never raises. Any failure (timeout, non-200, malformed JSON,
missing display_name) falls back to the coordinate string
"10.0000°, 20.0000°", so a slow or unavailable geocoder can only make a
message less pretty, never block or break a dispatch.

Results are cached per 4-decimal coordinate (~11 m) in Redis when enabled
(with GEOCODE_CACHE_TTL) and in a per-process LRU capped at
GEOCODE_MEMORY_CACHE_SIZE entries.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional

import httpx

from backend.app.alerts.models import GeoPoint
from backend.app.core.cache import cache_get, cache_set
from backend.app.core.config import Settings, settings as default_settings
from backend.app.spatial.radius_utils import format_coordinates

logger = logging.getLogger(__name__)


class ReverseGeocoder:
    """Nominatim-backed reverse geocoder with a coordinate fallback."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        use_redis: Optional[bool] = None,
    ):
        self.settings = settings or default_settings
        self.use_redis = (
            use_redis if use_redis is not None else self.settings.GEOCODE_CACHE_ENABLED
        )
        self._http_client = client
        self._cache: "OrderedDict[str, str]" = OrderedDict()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.GEOCODE_TIMEOUT_SECONDS,
                headers={"User-Agent": self.settings.GEOCODE_USER_AGENT},
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    @staticmethod
    def _cache_key(point: GeoPoint) -> str:
        return f"geocode:{point.lat:.4f}:{point.lng:.4f}"

    async def describe(self, point: GeoPoint) -> str:
        """Human-readable address for point, or its formatted coordinates."""
        key = self._cache_key(point)
        cached = self._cache.get(key)
        if cached:
            self._cache.move_to_end(key)
            return cached
        if self.use_redis:
            remote = await cache_get(key)
            if isinstance(remote, str) and remote:
                self._remember(key, remote)
                return remote

        address = await self._lookup(point)
        if address is None:
            return format_coordinates(point)

        self._remember(key, address)
        if self.use_redis:
            await cache_set(key, address, ttl=self.settings.GEOCODE_CACHE_TTL)
        return address

    def _remember(self, key: str, address: str) -> None:
        self._cache[key] = address
        self._cache.move_to_end(key)
        while len(self._cache) > max(self.settings.GEOCODE_MEMORY_CACHE_SIZE, 0):
            self._cache.popitem(last=False)

    async def _lookup(self, point: GeoPoint) -> Optional[str]:
        params = {
            "format": "json",
            "lat": point.lat,
            "lon": point.lng,
            "zoom": 14,
            "addressdetails": 1,
        }
        try:
            client = await self._get_client()
            response = await client.get(
                self.settings.NOMINATIM_URL,
                params=params,
                headers={"User-Agent": self.settings.GEOCODE_USER_AGENT},
                timeout=self.settings.GEOCODE_TIMEOUT_SECONDS,
            )
            if response.status_code != 200:
                logger.warning(
                    "Nominatim reverse-geocode failed with status %d", response.status_code,
                )
                return None
            data = response.json()
        except Exception as e:
            logger.warning("Nominatim reverse-geocode error: %s: %s", type(e).__name__, e)
            return None

        display_name = data.get("display_name") if isinstance(data, dict) else None
        if not isinstance(display_name, str) or not display_name.strip():
            logger.debug("Nominatim returned no display_name for %s", point)
            return None
        return display_name.strip()
