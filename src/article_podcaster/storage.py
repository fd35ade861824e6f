"""File layout for exported audio, paragraph scratch files and model files."""

import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

AUDIO_DIR_NAME = "audio"
MODELS_DIR_NAME = "models"
PARAGRAPH_FILE_TEMPLATE = "{index:03d}.{ext}"

DEFAULT_DATA_DIR = Path.home() / ".article-podcaster"
DATA_DIR_ENV_VAR = "ARTICLE_PODCASTER_HOME"


def resolve_data_dir(data_dir: Path | None = None) -> Path:
    """Pick the data directory: explicit argument, environment, then default."""
    if data_dir is not None:
        return data_dir
    if env_dir := os.environ.get(DATA_DIR_ENV_VAR):
        return Path(env_dir)
    return DEFAULT_DATA_DIR


class AudioStorage:
    """Owns the on-disk layout of audio artifacts.

    One exported file per item lives at ``audio/<id>.<ext>``; paragraph
    files for an in-flight run live under ``audio/<id>/NNN.wav`` and are
    removed once assembly completes.

    Attributes:
        root: Data directory holding the audio and models directories
        audio_extension: Extension of exported per-item files
    """

    def __init__(self, root: Path, audio_extension: str = "m4a"):
        self.root = root
        self.audio_extension = audio_extension

    @property
    def audio_dir(self) -> Path:
        path = self.root / AUDIO_DIR_NAME
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def models_dir(self) -> Path:
        path = self.root / MODELS_DIR_NAME
        path.mkdir(parents=True, exist_ok=True)
        return path

    def audio_file_path(self, item_id: str, extension: str | None = None) -> Path:
        return self.audio_dir / f"{item_id}.{extension or self.audio_extension}"

    def resolve_audio_file(self, file_name: str) -> Path:
        """Resolve a persisted ``audio_file_path`` value to an absolute path."""
        return self.audio_dir / file_name

    def paragraph_dir(self, item_id: str) -> Path:
        path = self.audio_dir / item_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def remove_paragraph_dir(self, item_id: str) -> None:
        shutil.rmtree(self.audio_dir / item_id, ignore_errors=True)

    def delete_audio(self, item_id: str) -> None:
        """Delete every exported file and scratch directory for an item."""
        for path in self.audio_dir.glob(f"{item_id}.*"):
            path.unlink(missing_ok=True)
            logger.debug(f"Deleted {path}")
        self.remove_paragraph_dir(item_id)

    def file_exists(self, item_id: str) -> bool:
        """Whether any exported file exists for the item, whatever its format."""
        return any(path.is_file() for path in self.audio_dir.glob(f"{item_id}.*"))

    def total_storage_used(self) -> int:
        """Total size in bytes of everything under the audio directory."""
        return sum(
            f.stat().st_size for f in self.audio_dir.rglob("*") if f.is_file()
        )

    def formatted_storage_used(self) -> str:
        return format_byte_count(self.total_storage_used())

    def delete_all_audio(self) -> None:
        audio_dir = self.audio_dir
        shutil.rmtree(audio_dir)
        audio_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Deleted all audio under {audio_dir}")


def paragraph_file_name(index: int, ext: str = "wav") -> str:
    """Name of one paragraph's scratch file, e.g. ``007.wav``."""
    return PARAGRAPH_FILE_TEMPLATE.format(index=index, ext=ext)


def format_byte_count(size: int) -> str:
    """Format a byte count in MB or GB.

    Examples:
        >>> format_byte_count(5_500_000)
        '5.5 MB'
        >>> format_byte_count(2_000_000_000)
        '2.0 GB'
    """
    if size >= 1_000_000_000:
        return f"{size / 1_000_000_000:.1f} GB"
    return f"{size / 1_000_000:.1f} MB"
