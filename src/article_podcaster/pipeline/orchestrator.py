"""Processing orchestrator: drives one WorkItem through extraction and audio.

Each call runs the two phases in order. Errors raised inside a phase are
recorded on the item (failure state, message, retry count) and never
escape. Only one item is processed at a time per orchestrator instance.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

from article_podcaster.compilers.audio_assembler import AudioAssembler
from article_podcaster.engines import AudioUnit, SpeechSynthesisEngine, create_engine
from article_podcaster.exceptions import ItemNotFoundError, PodcasterError
from article_podcaster.pipeline.store import WorkItemStore
from article_podcaster.pipeline.synthesis import ParagraphSynthesisPipeline
from article_podcaster.storage import AudioStorage
from article_podcaster.transformers.text_normalizer import split_into_paragraphs
from schemas.extracted_article import ExtractedArticle
from schemas.settings import PodcastSettings
from schemas.work_item import ItemState, WorkItem

logger = logging.getLogger(__name__)

NO_TEXT_MESSAGE = "No extracted text available."

EXTRACTION_STAGE = "extraction"
AUDIO_STAGE = "audio_generation"


class Extractor(Protocol):
    async def extract(self, url: str) -> ExtractedArticle: ...


EngineFactory = Callable[[str, AudioStorage], SpeechSynthesisEngine]
ProgressListener = Callable[[WorkItem], None]


class ProcessingOrchestrator:
    """Runs the extraction + audio phase pair for queued items.

    The lock doubles as the "is processing" flag: a call that finds it held
    returns immediately instead of waiting, so overlapping triggers (CLI,
    queue intake, background worker) never start a second item.

    Attributes:
        store: Persisted WorkItem records
        extractor: Turns a URL into an ExtractedArticle
        storage: File layout for exported audio and scratch files
        settings_loader: Returns the current settings; read once per audio phase
        engine_factory: Builds the engine named by ``tts_engine``
        pipeline: Paragraph synthesis pipeline
        assembler_factory: Builds an assembler for an output format
        progress_listener: Optional observer called on each progress update
    """

    def __init__(
        self,
        store: WorkItemStore,
        extractor: Extractor,
        storage: AudioStorage,
        settings_loader: Callable[[], PodcastSettings] = PodcastSettings,
        engine_factory: EngineFactory = create_engine,
        pipeline: ParagraphSynthesisPipeline | None = None,
        assembler_factory: Callable[[str], AudioAssembler] = AudioAssembler,
        progress_listener: ProgressListener | None = None,
    ):
        self.store = store
        self.extractor = extractor
        self.storage = storage
        self.settings_loader = settings_loader
        self.engine_factory = engine_factory
        self.pipeline = pipeline or ParagraphSynthesisPipeline()
        self.assembler_factory = assembler_factory
        self.progress_listener = progress_listener
        self._lock = asyncio.Lock()

    @property
    def is_processing(self) -> bool:
        return self._lock.locked()

    async def process_item(self, item: WorkItem) -> bool:
        """Run the phase pair for one item.

        Does nothing unless the item is pending or retryable and no other
        item is being processed. Eligibility is checked again against the
        persisted record once the lock is held, and the caller's copy is
        refreshed from it, so a stale copy never re-runs a finished item.

        Returns:
            True if the item ended in audio_ready, False otherwise
        """
        if not _is_eligible(item):
            logger.debug(f"Item {item.id} is {item.state.value}; nothing to do")
            return False
        if self._lock.locked():
            logger.info(f"Already processing an item; skipping {item.id}")
            return False

        async with self._lock:
            self._refresh(item)
            if not _is_eligible(item):
                logger.info(f"Item {item.id} is already {item.state.value}; skipping")
                return False

            logger.info(f"Processing item {item.id} ({item.url})")
            await self._run_extraction(item)
            if item.state is ItemState.EXTRACTED:
                await self._run_audio_generation(item)

        return item.state is ItemState.AUDIO_READY

    async def recover_next(self) -> WorkItem | None:
        """Process the oldest pending item, if there is one.

        Returns:
            The processed item, or None when nothing was pending
        """
        item = self.store.oldest_pending()
        if item is None:
            logger.debug("No pending items")
            return None
        await self.process_item(item)
        return item

    async def _run_extraction(self, item: WorkItem) -> None:
        self._move(item, ItemState.EXTRACTING, EXTRACTION_STAGE)

        try:
            article = await self.extractor.extract(item.url)
        except Exception as e:
            self._fail(item, ItemState.EXTRACTION_FAILED, _error_message(e), EXTRACTION_STAGE)
            return

        item.title = article.title or item.title
        item.author = article.author
        item.excerpt = article.excerpt
        item.extracted_text = article.content
        item.word_count = len(article.content.split())
        item.extracted_at = _utcnow()
        item.error_message = None
        self._move(item, ItemState.EXTRACTED, EXTRACTION_STAGE)
        logger.info(f"Extracted '{item.title}' ({item.word_count} words)")

    async def _run_audio_generation(self, item: WorkItem) -> None:
        text = item.extracted_text
        if not text or not text.strip():
            self._fail(item, ItemState.AUDIO_GENERATION_FAILED, NO_TEXT_MESSAGE, AUDIO_STAGE)
            return

        paragraphs = split_into_paragraphs(text)
        item.processed_paragraphs = 0
        item.total_paragraphs = len(paragraphs)
        self._move(item, ItemState.GENERATING_AUDIO, AUDIO_STAGE)

        try:
            settings = self.settings_loader()
            scratch_dir = self.storage.paragraph_dir(item.id)
            engine = self.engine_factory(settings.tts_engine, self.storage)
            units = await self._synthesize(item, paragraphs, engine, settings, scratch_dir)
            assembler = self.assembler_factory(settings.output_format)
            destination = self.storage.audio_file_path(item.id, settings.output_format)
            path, duration = await assembler.concatenate(
                units, destination, cleanup_dir=scratch_dir
            )
        except Exception as e:
            self.storage.remove_paragraph_dir(item.id)
            self._fail(item, ItemState.AUDIO_GENERATION_FAILED, _error_message(e), AUDIO_STAGE)
            return

        item.audio_file_path = path.name
        item.audio_duration_seconds = duration
        item.audio_generated_at = _utcnow()
        item.error_message = None
        self._move(item, ItemState.AUDIO_READY, AUDIO_STAGE)
        logger.info(f"Audio ready for '{item.title}' ({duration:.1f}s)")

    async def _synthesize(
        self,
        item: WorkItem,
        paragraphs: list[str],
        engine: SpeechSynthesisEngine,
        settings: PodcastSettings,
        scratch_dir: Path,
    ) -> list[AudioUnit]:
        """Run the pipeline while a writer task drains its progress channel."""
        channel: asyncio.Queue = asyncio.Queue()
        writer = asyncio.create_task(
            self._write_progress(item, channel, settings.progress_save_interval)
        )
        try:
            return await self.pipeline.run(
                paragraphs,
                engine,
                settings.voice_id,
                lambda done, total: channel.put_nowait((done, total)),
                scratch_dir,
            )
        finally:
            channel.put_nowait(None)
            await writer

    async def _write_progress(
        self, item: WorkItem, channel: asyncio.Queue, save_interval: float
    ) -> None:
        """Apply progress updates to the item until the channel is closed.

        Counts never go backwards or beyond the recorded total. Saves are
        throttled to one per ``save_interval`` seconds; a failed save or
        listener call is logged and ignored.
        """
        loop = asyncio.get_running_loop()
        last_saved: float | None = None

        while True:
            update = await channel.get()
            if update is None:
                return

            processed, total = update
            limit = min(total, item.total_paragraphs or total)
            processed = min(processed, limit)
            if processed <= (item.processed_paragraphs or 0):
                continue
            item.processed_paragraphs = processed

            if self.progress_listener is not None:
                try:
                    self.progress_listener(item)
                except Exception as e:
                    logger.warning(f"Progress listener failed for {item.id}: {e}")

            now = loop.time()
            if last_saved is None or now - last_saved >= save_interval:
                try:
                    self.store.save(item)
                except Exception as e:
                    logger.warning(f"Could not save progress for {item.id}: {e}")
                last_saved = now

    def _refresh(self, item: WorkItem) -> None:
        """Overwrite ``item`` with its persisted record, if there is one."""
        try:
            persisted = self.store.load(item.id)
        except ItemNotFoundError:
            return
        except (OSError, ValueError) as e:
            logger.warning(f"Could not reload item {item.id}, using the given copy: {e}")
            return
        # persisted is already validated; assign all fields at once
        item.__dict__.update(persisted.__dict__)

    def _move(self, item: WorkItem, target: ItemState, stage: str) -> None:
        item.transition_to(target)
        item.write_log(f"State changed to {target.value}", level="INFO", stage=stage)
        logger.debug(f"Item {item.id} -> {target.value}")
        self._save(item)

    def _fail(self, item: WorkItem, target: ItemState, message: str, stage: str) -> None:
        item.record_failure(target, message)
        item.write_log(message, level="ERROR", stage=stage)
        logger.error(f"Item {item.id} {target.value}: {message}")
        self._save(item)

    def _save(self, item: WorkItem) -> None:
        try:
            self.store.save(item)
        except OSError as e:
            logger.error(f"Failed to save item {item.id}: {e}")


def _is_eligible(item: WorkItem) -> bool:
    return item.state is ItemState.PENDING or item.state.can_retry


def _error_message(error: Exception) -> str:
    if isinstance(error, PodcasterError):
        return error.message
    return str(error) or error.__class__.__name__


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
