"""Geocoding, maps and caching helpers."""
