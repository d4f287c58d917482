"""Image format validation.

Modules:
    detector    FormatDetector protocol and the strategy-chain detector
    verdicts    Verdict collection with a TTL/LRU cache and metrics
"""
