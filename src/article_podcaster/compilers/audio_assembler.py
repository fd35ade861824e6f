"""Audio assembler for combining paragraph units into one file.

Appends each paragraph's audio to a single timeline in order and exports
the result. The reported duration is the sum of the constituent segment
durations, not a measurement of the exported file.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from article_podcaster.engines.base import AudioUnit
from article_podcaster.exceptions import AssemblyError, AssemblyErrorKind

logger = logging.getLogger(__name__)

# output format -> (ffmpeg container, codec)
EXPORT_FORMATS: dict[str, tuple[str, str | None]] = {
    "m4a": ("ipod", "aac"),
    "mp3": ("mp3", None),
    "wav": ("wav", None),
}


class AudioAssembler:
    """Concatenate ordered audio units and export a single file.

    Units that are missing, empty, or cannot be decoded are skipped with a
    warning and contribute no duration.

    Attributes:
        output_format: Key of EXPORT_FORMATS used for the exported file
    """

    def __init__(self, output_format: str = "m4a"):
        if output_format not in EXPORT_FORMATS:
            raise ValueError(f"unsupported output format: {output_format}")
        self.output_format = output_format

    async def concatenate(
        self,
        units: list[AudioUnit],
        destination: Path,
        cleanup_dir: Path | None = None,
    ) -> tuple[Path, float]:
        """Concatenate units in order and export them to ``destination``.

        Args:
            units: Paragraph audio in playback order
            destination: Exported file path; an existing file is replaced
            cleanup_dir: Scratch directory removed once assembly finishes,
                whether or not it succeeded

        Returns:
            Tuple of (exported file path, total duration in seconds)

        Raises:
            AssemblyError: COMPOSITION_FAILED if no unit holds audio,
                EXPORT_FAILED if encoding or writing fails
        """
        try:
            return await asyncio.to_thread(self._assemble, units, destination)
        finally:
            if cleanup_dir is not None:
                shutil.rmtree(cleanup_dir, ignore_errors=True)
                logger.debug(f"Removed paragraph files in {cleanup_dir}")

    def _assemble(self, units: list[AudioUnit], destination: Path) -> tuple[Path, float]:
        timeline: AudioSegment | None = None
        cursor = 0.0

        for index, unit in enumerate(units):
            segment = self._load_unit(index, unit)
            if segment is None:
                continue
            timeline = segment if timeline is None else timeline + segment
            cursor += segment.duration_seconds

        if timeline is None:
            raise AssemblyError(
                AssemblyErrorKind.COMPOSITION_FAILED,
                "Failed to create audio composition: no paragraph produced audio.",
            )

        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.unlink(missing_ok=True)

        container, codec = EXPORT_FORMATS[self.output_format]
        try:
            exported = timeline.export(str(destination), format=container, codec=codec)
            exported.close()
        except Exception as e:
            destination.unlink(missing_ok=True)
            raise AssemblyError(
                AssemblyErrorKind.EXPORT_FAILED, f"Failed to export audio file: {e}"
            ) from e

        logger.info(
            f"Assembled {len(units)} units into {destination.name} ({cursor:.1f}s)"
        )
        return destination, cursor

    def _load_unit(self, index: int, unit: AudioUnit) -> AudioSegment | None:
        """Load one unit, or return None if it holds no audio."""
        if not unit.path.is_file() or unit.path.stat().st_size == 0:
            logger.warning(f"Skipping unit {index}: no audio at {unit.path}")
            return None

        try:
            segment = AudioSegment.from_file(str(unit.path), format=unit.format)
        except (CouldntDecodeError, EOFError, OSError, ValueError) as e:
            logger.warning(f"Skipping unit {index}: could not decode {unit.path}: {e}")
            return None

        if segment.frame_count() == 0:
            logger.warning(f"Skipping unit {index}: empty audio track")
            return None
        return segment
