"""
Namespace providers and fallbacks.

- geocoding: Gemini extraction + Google Maps / Mapbox / Nominatim
- verification: Gemini image analysis
- updates: FEMA scrape + Red Cross notice, curated fallback
- social_media: in-process social feed ranked by relevance
"""

from .gemini import GeminiClient
from .geocoding import (
    GeminiLocationExtractor,
    GoogleMapsGeocoder,
    MapboxGeocoder,
    MockGeocodingFallback,
    NominatimGeocoder,
    TwoStageGeocodingProvider,
    build_geocoding_providers,
)
from .social_media import EmptyFeedFallback, SocialMediaFeed, SocialPost
from .updates import (
    CuratedUpdates,
    CuratedUpdatesFallback,
    FemaUpdatesScraper,
    RedCrossUpdatesFeed,
    sort_newest_first,
)
from .verification import (
    GeminiVerificationProvider,
    MockVerificationFallback,
    VerificationThresholds,
    parse_verdict,
)

__all__ = [
    "CuratedUpdates",
    "CuratedUpdatesFallback",
    "EmptyFeedFallback",
    "FemaUpdatesScraper",
    "GeminiClient",
    "GeminiLocationExtractor",
    "GeminiVerificationProvider",
    "GoogleMapsGeocoder",
    "MapboxGeocoder",
    "MockGeocodingFallback",
    "MockVerificationFallback",
    "NominatimGeocoder",
    "RedCrossUpdatesFeed",
    "SocialMediaFeed",
    "SocialPost",
    "TwoStageGeocodingProvider",
    "VerificationThresholds",
    "build_geocoding_providers",
    "parse_verdict",
    "sort_newest_first",
]
