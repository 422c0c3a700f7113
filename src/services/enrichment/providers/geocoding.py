"""
Geocoding namespace: free text -> location name -> coordinates.

Two stages, packaged as one provider in the chain:

- Stage A: Gemini extracts a location phrase from the text
- Stage B: the first configured mapping service geocodes the phrase
  (Google Maps, then Mapbox, then Nominatim)

Stage B is chosen by configuration, not by probing: if the configured
service fails the namespace goes to the pattern-matching fallback.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from ..config import EnrichmentServiceConfig
from ..core.models import ProviderOutcome, ProviderSuccess, ResolutionRequest
from ..exceptions import ProviderError
from .gemini import GeminiClient

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """Extract the specific location name from the following text. \
Return only the location name in a format suitable for geocoding \
(e.g., "Manhattan, NYC" or "Brooklyn, New York" or "Los Angeles, CA").

Text: "{text}"

If no specific location is mentioned, return "Location not specified".
Only return the location name, nothing else."""


class GeminiLocationExtractor:
    """Stage A: ask Gemini for the location phrase in a piece of text."""

    name = "gemini"

    def __init__(self, gemini: GeminiClient):
        self._gemini = gemini

    async def extract(self, text: str) -> str:
        """
        Raises:
            ProviderError: If Gemini fails or reports that no location is mentioned
        """
        reply = await self._gemini.generate(EXTRACTION_PROMPT.format(text=text))
        location = reply.strip().replace('"', "").replace("'", "")
        if not location or "not specified" in location.lower():
            raise ProviderError(self.name, "no location found in text")
        return location


class Geocoder(Protocol):
    """Stage B: location phrase -> {lat, lng, formatted_address, service}."""

    name: str

    async def geocode(self, location: str) -> dict[str, Any]:
        ...


class GoogleMapsGeocoder:
    name = "google_maps"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        url: str = "https://maps.googleapis.com/maps/api/geocode/json",
    ):
        self._http = http
        self._api_key = api_key
        self._url = url

    async def geocode(self, location: str) -> dict[str, Any]:
        response = await self._http.get(
            self._url, params={"address": location, "key": self._api_key}
        )
        response.raise_for_status()
        data = response.json()

        if data.get("status") != "OK" or not data.get("results"):
            raise ProviderError(self.name, f"geocoding failed: {data.get('status')}")

        result = data["results"][0]
        point = result["geometry"]["location"]
        return {
            "lat": point["lat"],
            "lng": point["lng"],
            "formatted_address": result["formatted_address"],
            "service": self.name,
        }


class MapboxGeocoder:
    name = "mapbox"

    def __init__(
        self,
        http: httpx.AsyncClient,
        access_token: str,
        url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places",
    ):
        self._http = http
        self._access_token = access_token
        self._url = url.rstrip("/")

    async def geocode(self, location: str) -> dict[str, Any]:
        response = await self._http.get(
            f"{self._url}/{quote(location, safe='')}.json",
            params={"access_token": self._access_token, "limit": 1},
        )
        response.raise_for_status()
        features = response.json().get("features") or []

        if not features:
            raise ProviderError(self.name, "no results")

        lng, lat = features[0]["center"][:2]
        return {
            "lat": lat,
            "lng": lng,
            "formatted_address": features[0]["place_name"],
            "service": self.name,
        }


class NominatimGeocoder:
    name = "nominatim"

    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str = "https://nominatim.openstreetmap.org/search",
        user_agent: str = "disaster-enrichment/0.1",
    ):
        self._http = http
        self._url = url
        self._user_agent = user_agent

    async def geocode(self, location: str) -> dict[str, Any]:
        response = await self._http.get(
            self._url,
            params={"format": "json", "q": location, "limit": 1},
            headers={"User-Agent": self._user_agent},
        )
        response.raise_for_status()
        results = response.json()

        if not results:
            raise ProviderError(self.name, "no results")

        result = results[0]
        return {
            "lat": float(result["lat"]),
            "lng": float(result["lon"]),
            "formatted_address": result["display_name"],
            "service": self.name,
        }


class TwoStageGeocodingProvider:
    """Extract a location with Gemini, then geocode it with one mapping service."""

    def __init__(self, extractor: GeminiLocationExtractor, geocoder: Geocoder):
        self._extractor = extractor
        self._geocoder = geocoder
        self.name = f"{extractor.name}+{geocoder.name}"

    async def attempt(self, request: ResolutionRequest) -> ProviderOutcome:
        location = await self._extractor.extract(request.payload)
        coordinates = await self._geocoder.geocode(location)
        return ProviderSuccess(
            value={
                "original_text": request.payload,
                "extracted_location": location,
                "coordinates": coordinates,
                "success": True,
                "mock": False,
            }
        )


DEFAULT_LOCATION = "New York, NY"

GAZETTEER: dict[str, tuple[float, float]] = {
    "Manhattan, NYC": (40.7831, -73.9712),
    "Brooklyn, NY": (40.6782, -73.9442),
    "Queens, NY": (40.7282, -73.7949),
    "Bronx, NY": (40.8448, -73.8648),
    "New York, NY": (40.7128, -74.0060),
    "Los Angeles, CA": (34.0522, -118.2437),
    "Chicago, IL": (41.8781, -87.6298),
}

# Tried in order; the first match wins.
LOCATION_PATTERNS = (
    # "in Brooklyn", "near Manhattan, NYC"
    re.compile(r"\b(?i:in|at|near)\s+([A-Z][a-zA-Z]*(?:,?\s+[A-Z][a-zA-Z]*)*)"),
    # "Chicago, IL"
    re.compile(r"\b([A-Z][a-zA-Z]+,?\s*[A-Z]{2,})\b"),
)


def extract_location(text: str) -> str:
    """Location phrase found by pattern matching, or the default location."""
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return DEFAULT_LOCATION


def lookup_coordinates(location: str) -> tuple[float, float]:
    """
    Gazetteer lookup: exact (case-insensitive), then on the place name before
    the first comma.
    Unknown places get the default location's coordinates.
    """
    wanted = location.strip().lower()
    for name, coords in GAZETTEER.items():
        if name.lower() == wanted:
            return coords

    place = wanted.split(",")[0].strip()
    for name, coords in GAZETTEER.items():
        if name.lower().split(",")[0].strip() == place:
            return coords

    return GAZETTEER[DEFAULT_LOCATION]


class MockGeocodingFallback:
    """Pattern matching plus a small gazetteer. Never fails."""

    name = "mock"

    def produce(self, request: ResolutionRequest, reason: str) -> dict[str, Any]:
        location = extract_location(request.payload)
        lat, lng = lookup_coordinates(location)
        return {
            "original_text": request.payload,
            "extracted_location": location,
            "coordinates": {
                "lat": lat,
                "lng": lng,
                "formatted_address": location,
                "service": "mock",
            },
            "success": True,
            "mock": True,
        }


def select_geocoder(
    config: EnrichmentServiceConfig, http: httpx.AsyncClient
) -> Geocoder | None:
    """First configured mapping service, or None."""
    if config.google_maps_api_key:
        return GoogleMapsGeocoder(http, config.google_maps_api_key)
    if config.mapbox_access_token:
        return MapboxGeocoder(http, config.mapbox_access_token)
    if config.nominatim_enabled:
        return NominatimGeocoder(
            http, url=config.nominatim_url, user_agent=config.nominatim_user_agent
        )
    return None


def build_geocoding_providers(
    config: EnrichmentServiceConfig,
    http: httpx.AsyncClient,
    gemini: GeminiClient | None,
) -> list[TwoStageGeocodingProvider]:
    """
    Provider list for the geocoding namespace.

    Empty when Gemini or every mapping service is unconfigured, in which case
    every request resolves through the fallback.
    """
    if gemini is None:
        logger.info("Gemini not configured, geocoding will use pattern matching")
        return []

    geocoder = select_geocoder(config, http)
    if geocoder is None:
        logger.info("No mapping service configured, geocoding will use pattern matching")
        return []

    logger.info(f"Geocoding via Gemini extraction and {geocoder.name}")
    return [TwoStageGeocodingProvider(GeminiLocationExtractor(gemini), geocoder)]
