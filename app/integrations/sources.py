"""
Scrape source strategies.

Each inbox entry carries a source tag (the ``source`` query parameter of the
webhook). The tag selects a strategy that knows which actor produces the
data, how to build that actor's run input, and how to map one raw dataset
item onto the normalized ``PostRecord`` consumed by the reconciler.
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.models.db.enums import SourceKind
from app.models.schemas import InstagramReelItem, PostRecord
from app.utils import get_logger

logger = get_logger(__name__)


def _round_half_up(seconds: Optional[float]) -> Optional[int]:
    """Whole seconds, halves rounded up (14.5 -> 15); non-positive -> None."""
    if not seconds or seconds <= 0:
        return None
    return int(math.floor(seconds + 0.5))


class ScrapeSource(ABC):
    kind: SourceKind

    @abstractmethod
    def build_run_input(self, usernames: List[str], results_limit: int) -> Dict[str, Any]:
        """Actor input for a run over ``usernames``."""

    @abstractmethod
    def parse_item(self, raw: Any) -> Optional[PostRecord]:
        """Map one dataset item; ``None`` when the item has an unusable shape."""


class InstagramReelSource(ScrapeSource):
    """Instagram reel scraper actor."""

    kind = SourceKind.INSTAGRAM

    def build_run_input(self, usernames: List[str], results_limit: int) -> Dict[str, Any]:
        return {"usernames": list(usernames), "resultsLimit": int(results_limit)}

    def parse_item(self, raw: Any) -> Optional[PostRecord]:
        if not isinstance(raw, dict):
            logger.debug("Dataset item is not an object", item_type=type(raw).__name__)
            return None
        try:
            item = InstagramReelItem.model_validate(raw)
        except ValidationError as e:
            logger.debug(
                "Dataset item failed validation",
                item_id=raw.get("id"),
                errors=e.error_count(),
            )
            return None

        # Image posts report no play count; fall through to the view counter.
        views = item.video_play_count or item.video_view_count or 0
        url = item.url
        if not url and item.short_code:
            url = f"https://www.instagram.com/reel/{item.short_code}/"

        return PostRecord(
            platform_post_id=item.post_id,
            owner_username=item.owner_username,
            url=url,
            caption=item.caption,
            hashtags=item.hashtags,
            thumbnail_url=item.display_url,
            posted_at=item.timestamp,
            duration_seconds=_round_half_up(item.video_duration),
            views=max(views, 0),
            likes=max(item.likes_count or 0, 0),
            comments=max(item.comments_count or 0, 0),
        )


DEFAULT_SOURCE = SourceKind.INSTAGRAM.value

SOURCE_REGISTRY: Dict[str, ScrapeSource] = {
    SourceKind.INSTAGRAM.value: InstagramReelSource(),
}


def get_source(tag: Optional[str]) -> ScrapeSource:
    """Strategy for a source tag; unknown or missing tags use the default."""
    key = (tag or "").strip().lower()
    source = SOURCE_REGISTRY.get(key)
    if source is None:
        if key:
            logger.warning(
                "Unknown source tag, using default strategy",
                source=tag,
                default=DEFAULT_SOURCE,
                supported_sources=list(SOURCE_REGISTRY.keys()),
            )
        return SOURCE_REGISTRY[DEFAULT_SOURCE]
    return source


__all__ = [
    "ScrapeSource",
    "InstagramReelSource",
    "SOURCE_REGISTRY",
    "DEFAULT_SOURCE",
    "get_source",
]
