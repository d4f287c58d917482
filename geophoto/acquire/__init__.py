"""Photo acquisition from geotagged image sources.

Modules:
    base        PhotoSource and PhotoAcquirer protocols
    locations   Search locations and per-attempt radius growth
    metadata    Commons imageinfo parsing (year, GPS, credits)
    wikimedia   Wikimedia Commons source over httpx
    pipeline    Attempt loop: search, describe, validate, decide
"""
