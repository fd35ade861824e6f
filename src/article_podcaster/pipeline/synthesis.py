"""Paragraph-by-paragraph speech synthesis.

Drives one engine over every paragraph of an item, strictly in order,
and collects the resulting audio units in a per-item scratch directory.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Callable

from pydub import AudioSegment

from article_podcaster.engines.base import AudioUnit, SpeechSynthesisEngine
from article_podcaster.engines.edge_engine import EdgeSpeechEngine
from article_podcaster.exceptions import EmptyInputError, EngineError, EngineErrorKind
from article_podcaster.storage import paragraph_file_name

logger = logging.getLogger(__name__)

CONTAINER_FORMAT = "wav"

ProgressCallback = Callable[[int, int], None]


class ParagraphSynthesisPipeline:
    """Synthesize an ordered list of paragraphs into audio units.

    If the requested engine cannot load its model, the fallback engine is
    used for the rest of the run; the substitution is logged and not
    persisted anywhere.

    Attributes:
        fallback_factory: Builds the always-available engine used on load failure
    """

    def __init__(
        self,
        fallback_factory: Callable[[], SpeechSynthesisEngine] = EdgeSpeechEngine,
    ):
        self.fallback_factory = fallback_factory

    async def run(
        self,
        paragraphs: list[str],
        engine: SpeechSynthesisEngine,
        voice_id: str,
        on_progress: ProgressCallback,
        scratch_dir: Path,
    ) -> list[AudioUnit]:
        """Synthesize each paragraph in order.

        Args:
            paragraphs: Paragraph texts in reading order
            engine: Configured engine
            voice_id: Engine-specific voice selector
            on_progress: Called with (completed, total) after each paragraph;
                must not block
            scratch_dir: Directory receiving one ``NNN.wav`` per paragraph

        Returns:
            Audio units in paragraph order, all in the pipeline container format

        Raises:
            EmptyInputError: If there are no paragraphs
            EngineError: If any paragraph fails to synthesize
        """
        if not paragraphs:
            raise EmptyInputError()

        engine = await self._select_engine(engine)
        scratch_dir.mkdir(parents=True, exist_ok=True)
        total = len(paragraphs)
        units: list[AudioUnit] = []

        for index, paragraph in enumerate(paragraphs):
            raw_unit = await engine.synthesize(paragraph, voice_id)
            destination = scratch_dir / paragraph_file_name(index, CONTAINER_FORMAT)
            units.append(await self._store_unit(raw_unit, destination))

            on_progress(index + 1, total)
            logger.info(f"Generated paragraph {index + 1}/{total}")

        return units

    async def _select_engine(self, engine: SpeechSynthesisEngine) -> SpeechSynthesisEngine:
        if engine.is_model_loaded():
            return engine
        try:
            await engine.load_model()
            return engine
        except EngineError as e:
            fallback = self.fallback_factory()
            logger.warning(
                f"{engine.kind.value} engine unavailable ({e.message}); "
                f"using {fallback.kind.value} engine for this run"
            )
            return fallback

    async def _store_unit(self, unit: AudioUnit, destination: Path) -> AudioUnit:
        """Move a raw unit into the scratch directory, converting if needed."""
        destination.unlink(missing_ok=True)
        if unit.format == CONTAINER_FORMAT:
            shutil.move(str(unit.path), str(destination))
        else:
            try:
                await asyncio.to_thread(_convert, unit, destination)
            except Exception as e:
                raise EngineError(
                    EngineErrorKind.SYNTHESIS_FAILED,
                    f"Could not convert {unit.format} audio to {CONTAINER_FORMAT}: {e}",
                ) from e
            finally:
                unit.path.unlink(missing_ok=True)
        return AudioUnit(path=destination, format=CONTAINER_FORMAT)


def _convert(unit: AudioUnit, destination: Path) -> None:
    segment = AudioSegment.from_file(str(unit.path), format=unit.format)
    segment.export(str(destination), format=CONTAINER_FORMAT).close()
