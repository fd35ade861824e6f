"""Downloader for neural speech model weights."""

import asyncio
import hashlib
import logging
import os
from pathlib import Path
from typing import Callable

import httpx

from article_podcaster.engines.kokoro_engine import KOKORO_MODEL_URL, model_path
from article_podcaster.storage import AudioStorage

from .client import Client
from .exceptions import ConnectionError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

# (bytes received, total bytes or None when the server does not say)
DownloadProgress = Callable[[int, int | None], None]


class ModelDownloader(Client):
    """Streams model files into the models directory.

    Bytes are written to a ``.part`` file next to the destination and only
    renamed into place once the body has been fully received, so a partial
    download is never mistaken for a usable model.

    Example:
        async with ModelDownloader() as downloader:
            path = await downloader.download_kokoro_model(storage)
    """

    async def download(
        self,
        url: str,
        destination: Path,
        on_progress: DownloadProgress | None = None,
    ) -> Path:
        """Download ``url`` to ``destination``.

        Args:
            url: Source URL
            destination: Final file path; an existing file is replaced
            on_progress: Called after every chunk with (received, total)

        Returns:
            The destination path

        Raises:
            APIError: If the server returns a non-2xx response
            ConnectionError: If the transfer fails
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")

        try:
            async with self.client.stream("GET", url) as response:
                self._handle_response(response)
                total = _content_length(response)
                received = 0
                with open(partial, "wb") as f:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        f.write(chunk)
                        received += len(chunk)
                        if on_progress is not None:
                            on_progress(received, total)
        except httpx.RequestError as e:
            partial.unlink(missing_ok=True)
            raise ConnectionError(f"Download of {url} failed: {e}") from e
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        os.replace(partial, destination)
        checksum = await asyncio.to_thread(compute_checksum, destination)
        logger.info(f"Downloaded {destination.name} ({received} bytes, sha256 {checksum})")
        return destination

    async def download_kokoro_model(
        self,
        storage: AudioStorage,
        on_progress: DownloadProgress | None = None,
    ) -> Path:
        return await self.download(KOKORO_MODEL_URL, model_path(storage), on_progress)


def is_kokoro_model_downloaded(storage: AudioStorage) -> bool:
    return model_path(storage).is_file()


def delete_kokoro_model(storage: AudioStorage) -> None:
    path = model_path(storage)
    path.unlink(missing_ok=True)
    logger.info(f"Deleted model file {path}")


def compute_checksum(file_path: Path) -> str:
    """Compute the SHA-256 checksum of a file."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(8192), b""):
            sha256.update(block)
    return sha256.hexdigest()


def _content_length(response: httpx.Response) -> int | None:
    value = response.headers.get("content-length")
    return int(value) if value and value.isdigit() else None
