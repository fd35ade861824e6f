"""Schema definitions for Article Podcaster."""

from .extracted_article import ExtractedArticle
from .settings import PodcastSettings
from .voice import Voice
from .work_item import (
    ALLOWED_TRANSITIONS,
    InvalidTransitionError,
    ItemState,
    WorkItem,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ExtractedArticle",
    "InvalidTransitionError",
    "ItemState",
    "PodcastSettings",
    "Voice",
    "WorkItem",
]
