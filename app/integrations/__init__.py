"""
Integrations package initialization.
Exports the scraping provider client and the source strategies.
"""
from .apify import (
    ApifyClient,
    ApifyError,
    ApifyConfigError,
    ApifyResponseError,
    ApifyRateLimitError,
    ApifyTimeoutError,
    build_webhook_url,
)
from .sources import ScrapeSource, InstagramReelSource, get_source

__all__ = [
    "ApifyClient",
    "ApifyError",
    "ApifyConfigError",
    "ApifyResponseError",
    "ApifyRateLimitError",
    "ApifyTimeoutError",
    "build_webhook_url",
    "ScrapeSource",
    "InstagramReelSource",
    "get_source",
]
