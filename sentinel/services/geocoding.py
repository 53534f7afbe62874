"""
Address Resolver

Turns a free-text location description into coordinates and a normalized
address.

Strategy (stop at first success):
    1. Google Geocoding API  - best for structured street addresses
    2. Google Places Text Search - better for landmarks and descriptions
    3. Both fail -> None. Callers must never clear coordinates that
       resolved earlier because of this.

A lookup counts as a success only when the provider answers status "OK"
with at least one result; the first result is taken as-is.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
PLACES_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"
DEFAULT_TIMEOUT = 10

# Structured address components, in the order they are joined
ADDRESS_COMPONENTS = (
    "Building_House_Number",
    "Street",
    "State_Province_Town_City",
    "landmark",
)
ADDRESS_DELIMITER = ", "


class ResolvedLocation(BaseModel):
    lat: float
    lng: float
    formatted_address: str
    provider: str


def build_address_string(location_json: Optional[Dict[str, Any]], approximate_location: Optional[str] = None) -> str:
    """
    Build a single address line from structured webhook components.

    Components are joined in fixed order, skipping blanks. An approximate
    location hint is appended unless it already overlaps (either way,
    case-insensitive) with one of the components.
    """
    if not location_json and not approximate_location:
        return ""

    if not isinstance(location_json, dict):
        location_json = {}
    address = location_json.get("address") or location_json
    if not isinstance(address, dict):
        address = {}

    parts = []
    for key in ADDRESS_COMPONENTS:
        value = address.get(key)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            parts.append(value)

    if approximate_location and isinstance(approximate_location, str) and approximate_location.strip():
        approx_lower = approximate_location.lower()
        already_included = any(
            approx_lower in p.lower() or p.lower() in approx_lower
            for p in parts
        )
        if not already_included:
            parts.append(approximate_location)

    return ADDRESS_DELIMITER.join(parts).strip()


class AddressResolver:
    """Ordered-fallback geocoder over the Google Maps web services."""

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        # An injected client is owned by the caller and never closed here
        self._client = client

    async def resolve(self, free_text: str) -> Optional[ResolvedLocation]:
        if not free_text or not free_text.strip():
            return None
        if not self.api_key:
            logger.warning("Missing Google Maps API key, skipping geocode")
            return None

        result = await self._lookup("geocode", GEOCODE_URL, {"address": free_text})
        if result:
            return result

        result = await self._lookup("places", PLACES_URL, {"query": free_text})
        if result:
            return result

        logger.warning(f"Geocoding failed for: {free_text}")
        return None

    async def _lookup(self, provider: str, url: str, params: Dict[str, str]) -> Optional[ResolvedLocation]:
        params = dict(params, key=self.api_key)
        logger.info(f"Google Maps GET {provider}: {params.get('address') or params.get('query')}")
        try:
            data = await self._get_json(url, params)
        except httpx.TimeoutException:
            logger.warning(f"{provider} lookup timed out")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{provider} lookup error: {e}")
            return None

        status = data.get("status", "")
        results = data.get("results")
        if not isinstance(results, list):
            results = []
        if status != "OK" or not results:
            logger.info(f"{provider}: status '{status}' with {len(results)} results")
            return None

        return self._first_candidate(provider, results[0])

    async def _get_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        if self._client is not None:
            response = await self._client.get(url, params=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("geocoder response is not a JSON object")
        return data

    def _first_candidate(self, provider: str, best: Any) -> Optional[ResolvedLocation]:
        if not isinstance(best, dict):
            return None
        geometry = best.get("geometry")
        loc = geometry.get("location") if isinstance(geometry, dict) else None
        if not isinstance(loc, dict):
            loc = {}
        lat, lng = loc.get("lat"), loc.get("lng")
        if lat is None or lng is None:
            logger.info(f"{provider}: first result has no coordinates")
            return None

        formatted = best.get("formatted_address")
        if not formatted and provider == "places":
            formatted = best.get("name")

        try:
            return ResolvedLocation(
                lat=lat,
                lng=lng,
                formatted_address=formatted or "",
                provider=provider,
            )
        except ValidationError as e:
            logger.warning(f"{provider}: unusable first result: {e.errors()}")
            return None
