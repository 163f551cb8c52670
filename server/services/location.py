"""Google Places address autocomplete and place details.

Both lookups go through the cache-aside engine; the googlemaps client is
synchronous so calls run in a worker thread.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import googlemaps

from constants import PLACE_AUTOCOMPLETE, PLACE_DETAILS, PLACE_DETAIL_FIELDS
from core.cache import CacheAside, cache_key
from core.config import Settings
from core.exceptions import ProviderError
from core.logging import get_logger, log_execution_time

logger = get_logger(__name__)

PROVIDER = "google_maps"


class LocationService:
    """Google Places API service."""

    def __init__(self, cache: CacheAside, settings: Settings,
                 client: Optional[googlemaps.Client] = None):
        self.cache = cache
        self.settings = settings
        self._client = client

    @property
    def client(self) -> googlemaps.Client:
        if self._client is None:
            if not self.settings.google_maps_api_key:
                raise ProviderError(PROVIDER, "Google Maps API key is not configured")
            self._client = googlemaps.Client(
                key=self.settings.google_maps_api_key,
                timeout=self.settings.maps_timeout
            )
        return self._client

    async def _call(self, operation: str, method_name: str, *args, **kwargs) -> Any:
        start_time = time.time()
        method = getattr(self.client, method_name)
        try:
            result = await asyncio.to_thread(method, *args, **kwargs)
        except googlemaps.exceptions.ApiError as e:
            logger.error("Places API error", operation=operation, status=e.status, error=e.message)
            raise ProviderError(PROVIDER, f"{e.status}: {e.message or 'request failed'}") from e
        except (googlemaps.exceptions.TransportError, googlemaps.exceptions.Timeout) as e:
            logger.error("Places API unreachable", operation=operation, error=str(e))
            raise ProviderError(PROVIDER, str(e) or "request timed out") from e

        log_execution_time(logger, operation, start_time, time.time())
        return result

    # =========================================================================
    # AUTOCOMPLETE
    # =========================================================================

    async def _fetch_predictions(self, query: str, session_token: Optional[str]) -> List[Dict[str, Any]]:
        predictions = await self._call(
            "places_autocomplete",
            "places_autocomplete",
            input_text=query,
            session_token=session_token,
            types="address",
            components={"country": [self.settings.places_country]},
            language=self.settings.places_language,
        )
        return [
            {
                "place_id": p["place_id"],
                "description": p.get("description", ""),
                "main_text": p.get("structured_formatting", {}).get("main_text", ""),
                "secondary_text": p.get("structured_formatting", {}).get("secondary_text", ""),
            }
            for p in predictions
        ]

    async def autocomplete(self, query: str, session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        """Address predictions for free-text input.

        The session token groups billing upstream but is not part of the
        cache key, so equal queries share one entry.
        """
        query = (query or "").strip()
        if not query:
            return []
        return await self.cache.get_or_compute(
            cache_key(PLACE_AUTOCOMPLETE, query),
            lambda: self._fetch_predictions(query, session_token),
            ttl=self.settings.cache_ttl,
        )

    # =========================================================================
    # PLACE DETAILS
    # =========================================================================

    async def _fetch_details(self, place_id: str, session_token: Optional[str]) -> Dict[str, Any]:
        response = await self._call(
            "place_details",
            "place",
            place_id,
            session_token=session_token,
            fields=sorted(PLACE_DETAIL_FIELDS),
            language=self.settings.places_language,
        )
        result = response.get("result") or {}
        location = result.get("geometry", {}).get("location", {})
        return {
            "place_id": result.get("place_id", place_id),
            "formatted_address": result.get("formatted_address", ""),
            "latitude": location.get("lat"),
            "longitude": location.get("lng"),
            "types": result.get("types", []),
        }

    async def place_details(self, place_id: str, session_token: Optional[str] = None) -> Dict[str, Any]:
        place_id = place_id.strip()
        return await self.cache.get_or_compute(
            cache_key(PLACE_DETAILS, place_id, fold_case=False),
            lambda: self._fetch_details(place_id, session_token),
            ttl=self.settings.cache_ttl,
        )
