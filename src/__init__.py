"""Disaster enrichment: resolution, caching and live delivery for disaster-response data."""

__version__ = "0.1.0"
