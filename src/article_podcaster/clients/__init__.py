"""Network clients for article pages and model files."""

from .article_extractor import ArticleExtractor
from .client import Client
from .exceptions import (
    APIError,
    ClientError,
    ConnectionError,
    NotFoundError,
    RateLimitError,
)
from .model_downloader import (
    ModelDownloader,
    delete_kokoro_model,
    is_kokoro_model_downloaded,
)

__all__ = [
    "Client",
    "ArticleExtractor",
    "ModelDownloader",
    "ClientError",
    "ConnectionError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "delete_kokoro_model",
    "is_kokoro_model_downloaded",
]
