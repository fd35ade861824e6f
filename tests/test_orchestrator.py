"""Tests for the processing orchestrator."""

import asyncio

import pytest

from article_podcaster.compilers.audio_assembler import AudioAssembler
from article_podcaster.engines import EdgeSpeechEngine, create_engine
from article_podcaster.exceptions import (
    AssemblyError,
    AssemblyErrorKind,
    EngineError,
    EngineErrorKind,
    InvalidURLError,
)
from article_podcaster.pipeline.orchestrator import NO_TEXT_MESSAGE, ProcessingOrchestrator
from article_podcaster.pipeline.store import WorkItemStore
from article_podcaster.pipeline.synthesis import ParagraphSynthesisPipeline
from article_podcaster.storage import AudioStorage
from conftest import FakeEngine, FakeExtractor
from schemas.extracted_article import ExtractedArticle
from schemas.settings import PodcastSettings
from schemas.work_item import ALLOWED_TRANSITIONS, ItemState, WorkItem


class RecordingStore(WorkItemStore):
    """Store that remembers the state of every save."""

    def __init__(self, root):
        super().__init__(root)
        self.saved_states: list[ItemState] = []

    def save(self, item):
        self.saved_states.append(item.state)
        super().save(item)


class SlowCommunicate:
    async def stream(self):
        await asyncio.sleep(5)
        yield {"type": "audio", "data": b"late"}


def make_orchestrator(
    store,
    storage,
    extractor,
    engine=None,
    settings=None,
    pipeline=None,
    engine_factory=None,
    **kwargs,
) -> ProcessingOrchestrator:
    settings = settings or PodcastSettings(output_format="wav", progress_save_interval=0)
    engine = engine if engine is not None else FakeEngine(durations_ms=[400, 600])
    if engine_factory is None:

        def engine_factory(kind, storage):
            return engine

    return ProcessingOrchestrator(
        store=store,
        extractor=extractor,
        storage=storage,
        settings_loader=lambda: settings,
        engine_factory=engine_factory,
        pipeline=pipeline or ParagraphSynthesisPipeline(fallback_factory=FakeEngine),
        **kwargs,
    )


def new_item(store, url="https://example.com/a", sort_order=100) -> WorkItem:
    item = WorkItem.create(url, sort_order=sort_order)
    store.save(item)
    return item


@pytest.fixture
def recording_store(data_dir):
    return RecordingStore(data_dir / "items")


class TestHappyPath:
    """Two-paragraph article processed end to end."""

    def test_reaches_audio_ready(self, recording_store, storage, sample_article):
        """Extraction, synthesis and assembly leave the item ready to play."""
        engine = FakeEngine(durations_ms=[400, 600])
        orchestrator = make_orchestrator(
            recording_store, storage, FakeExtractor(sample_article), engine=engine
        )
        item = new_item(recording_store)

        result = asyncio.run(orchestrator.process_item(item))

        assert result is True
        assert item.state is ItemState.AUDIO_READY
        assert item.title == "A Test Article"
        assert item.author == "Jane Writer"
        assert item.excerpt == "A short summary."
        assert item.word_count == 4
        assert item.extracted_at is not None
        assert item.audio_generated_at is not None
        assert item.audio_file_path == f"{item.id}.wav"
        assert item.audio_duration_seconds == pytest.approx(1.0, abs=0.01)
        assert item.error_message is None
        assert item.retry_count == 0
        assert [text for text, _ in engine.calls] == ["Para one.", "Para two."]
        assert storage.audio_file_path(item.id, "wav").is_file()
        assert not (storage.audio_dir / item.id).exists()

    def test_persisted_record_matches(self, recording_store, storage, sample_article):
        """The final state is saved to the store."""
        orchestrator = make_orchestrator(recording_store, storage, FakeExtractor(sample_article))
        item = new_item(recording_store)

        asyncio.run(orchestrator.process_item(item))

        assert recording_store.load(item.id) == item

    def test_saved_states_follow_graph(self, recording_store, storage, sample_article):
        """Every persisted state change is an edge of the graph."""
        orchestrator = make_orchestrator(recording_store, storage, FakeExtractor(sample_article))
        item = new_item(recording_store)

        asyncio.run(orchestrator.process_item(item))

        states = recording_store.saved_states
        for previous, current in zip(states, states[1:]):
            assert previous == current or current in ALLOWED_TRANSITIONS[previous]
        assert states[-1] is ItemState.AUDIO_READY

    def test_progress_sequence(self, store, storage, sample_article):
        """Progress reaches the listener as (1, 2) then (2, 2)."""
        seen = []
        orchestrator = make_orchestrator(
            store,
            storage,
            FakeExtractor(sample_article),
            progress_listener=lambda item: seen.append(
                (item.processed_paragraphs, item.total_paragraphs)
            ),
        )
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        assert seen == [(1, 2), (2, 2)]
        assert item.processed_paragraphs == 2

    def test_item_log_records_stages(self, store, storage, sample_article):
        """State changes are appended to the item's history."""
        orchestrator = make_orchestrator(store, storage, FakeExtractor(sample_article))
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        messages = [entry["message"] for entry in item.log]
        assert "State changed to extracting" in messages
        assert "State changed to audio_ready" in messages


class TestExtractionFailure:
    """Extraction errors stop the item before the audio phase."""

    def test_invalid_url(self, store, storage):
        """An invalid URL fails extraction and never reaches synthesis."""
        engine_calls = []
        orchestrator = make_orchestrator(
            store,
            storage,
            FakeExtractor(error=InvalidURLError()),
            engine_factory=lambda kind, s: engine_calls.append(kind),
        )
        item = new_item(store, url="notaurl")

        result = asyncio.run(orchestrator.process_item(item))

        assert result is False
        assert item.state is ItemState.EXTRACTION_FAILED
        assert item.retry_count == 1
        assert item.error_message == "The URL is not valid."
        assert engine_calls == []
        assert store.load(item.id).state is ItemState.EXTRACTION_FAILED

    def test_unexpected_error_is_caught(self, store, storage):
        """Any exception from the extractor becomes a failure state."""
        orchestrator = make_orchestrator(
            store, storage, FakeExtractor(error=RuntimeError("parser exploded"))
        )
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        assert item.state is ItemState.EXTRACTION_FAILED
        assert item.error_message == "parser exploded"


class TestAudioFailure:
    """Audio phase failures."""

    def test_empty_text(self, store, storage):
        """Blank extracted text fails the audio phase with a fixed message."""
        article = ExtractedArticle(title="Empty", content="   ")
        orchestrator = make_orchestrator(store, storage, FakeExtractor(article))
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        assert item.state is ItemState.AUDIO_GENERATION_FAILED
        assert item.error_message == NO_TEXT_MESSAGE
        assert item.retry_count == 1

    def test_edge_timeout(self, store, storage, sample_article):
        """An Edge call that exceeds its timeout fails the audio phase."""
        engine = EdgeSpeechEngine(timeout=0.05, communicate_factory=lambda t, v: SlowCommunicate())
        orchestrator = make_orchestrator(store, storage, FakeExtractor(sample_article), engine=engine)
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        assert item.state is ItemState.AUDIO_GENERATION_FAILED
        assert item.error_message == EngineError(EngineErrorKind.TIMEOUT).message
        assert item.retry_count == 1
        assert not (storage.audio_dir / item.id).exists()

    def test_assembly_failure(self, store, storage, sample_article):
        """An assembly error fails the phase and removes scratch files."""

        class BrokenAssembler(AudioAssembler):
            async def concatenate(self, units, destination, cleanup_dir=None):
                raise AssemblyError(AssemblyErrorKind.EXPORT_FAILED)

        orchestrator = make_orchestrator(
            store,
            storage,
            FakeExtractor(sample_article),
            assembler_factory=BrokenAssembler,
        )
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        assert item.state is ItemState.AUDIO_GENERATION_FAILED
        assert item.error_message == "Failed to export audio file."
        assert item.audio_file_path is None
        assert not (storage.audio_dir / item.id).exists()

    def test_scratch_dir_error_fails_phase(self, store, data_dir, sample_article):
        """A scratch directory that cannot be created fails the item instead of escaping."""

        class ReadOnlyStorage(AudioStorage):
            def paragraph_dir(self, item_id):
                raise PermissionError("scratch dir not writable")

        storage = ReadOnlyStorage(data_dir, audio_extension="wav")
        orchestrator = make_orchestrator(store, storage, FakeExtractor(sample_article))
        item = new_item(store)

        assert asyncio.run(orchestrator.process_item(item)) is False

        assert item.state is ItemState.AUDIO_GENERATION_FAILED
        assert "scratch dir not writable" in item.error_message
        assert item.retry_count == 1
        assert store.load(item.id).state is ItemState.AUDIO_GENERATION_FAILED

    def test_settings_error_fails_phase(self, store, storage, sample_article):
        """Unreadable settings fail the audio phase and release the orchestrator."""

        def broken_settings():
            raise ValueError("settings file is corrupt")

        orchestrator = make_orchestrator(store, storage, FakeExtractor(sample_article))
        orchestrator.settings_loader = broken_settings
        item = new_item(store)

        assert asyncio.run(orchestrator.process_item(item)) is False

        assert item.state is ItemState.AUDIO_GENERATION_FAILED
        assert item.error_message == "settings file is corrupt"
        assert orchestrator.is_processing is False


class TestEngineFallback:
    """Neural engine configured without its model."""

    def test_missing_model_falls_back(self, store, storage, sample_article):
        """Processing still reaches audio_ready using the fallback engine."""
        fallback = FakeEngine()
        orchestrator = make_orchestrator(
            store,
            storage,
            FakeExtractor(sample_article),
            settings=PodcastSettings(
                tts_engine="kokoro", output_format="wav", progress_save_interval=0
            ),
            engine_factory=create_engine,
            pipeline=ParagraphSynthesisPipeline(fallback_factory=lambda: fallback),
        )
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        assert item.state is ItemState.AUDIO_READY
        assert item.error_message is None
        assert len(fallback.calls) == 2


class TestEligibility:
    """Which items process_item accepts."""

    @pytest.mark.parametrize(
        "state", [ItemState.AUDIO_READY, ItemState.EXTRACTING, ItemState.PLAYED]
    )
    def test_ineligible_states_are_noops(self, store, storage, sample_article, state):
        """Items that are neither pending nor retryable are left alone."""
        extractor = FakeExtractor(sample_article)
        orchestrator = make_orchestrator(store, storage, extractor)
        item = new_item(store)
        item.state = state

        assert asyncio.run(orchestrator.process_item(item)) is False
        assert extractor.urls == []
        assert item.state is state

    def test_retry_from_failure_keeps_retry_count(self, store, storage, sample_article):
        """A failed item re-runs extraction; success clears only the error."""
        orchestrator = make_orchestrator(store, storage, FakeExtractor(sample_article))
        item = new_item(store)
        item.state = ItemState.AUDIO_GENERATION_FAILED
        item.error_message = "earlier failure"
        item.retry_count = 2
        store.save(item)

        asyncio.run(orchestrator.process_item(item))

        assert item.state is ItemState.AUDIO_READY
        assert item.error_message is None
        assert item.retry_count == 2

    def test_stale_copy_of_finished_item_is_skipped(self, store, storage, sample_article):
        """A caller holding an outdated pending copy does not re-run a finished item."""
        extractor = FakeExtractor(sample_article)
        orchestrator = make_orchestrator(store, storage, extractor)
        stale = new_item(store)
        current = store.load(stale.id)
        current.state = ItemState.EXTRACTING
        current.state = ItemState.EXTRACTED
        current.state = ItemState.GENERATING_AUDIO
        current.state = ItemState.AUDIO_READY
        current.audio_file_path = f"{current.id}.wav"
        store.save(current)

        assert asyncio.run(orchestrator.process_item(stale)) is False

        assert extractor.urls == []
        assert stale.state is ItemState.AUDIO_READY
        assert stale.audio_file_path == f"{current.id}.wav"
        assert store.load(stale.id).state is ItemState.AUDIO_READY

    def test_second_item_rejected_while_busy(self, store, storage, sample_article):
        """Only one item is processed at a time."""
        class BlockingExtractor(FakeExtractor):
            async def extract(self, url):
                await self.gate.wait()
                return await super().extract(url)

        async def run():
            extractor = BlockingExtractor(sample_article)
            extractor.gate = asyncio.Event()
            orchestrator = make_orchestrator(store, storage, extractor)
            first = new_item(store, "https://example.com/first")
            second = new_item(store, "https://example.com/second", sort_order=200)

            task = asyncio.create_task(orchestrator.process_item(first))
            await asyncio.sleep(0.01)
            busy = orchestrator.is_processing
            rejected = await orchestrator.process_item(second)
            extractor.gate.set()
            await task
            return busy, rejected, second, orchestrator.is_processing

        busy, rejected, second, still_busy = asyncio.run(run())

        assert busy is True
        assert rejected is False
        assert second.state is ItemState.PENDING
        assert still_busy is False


class TestProgressWrites:
    """Progress persistence is best effort."""

    def test_progress_save_errors_do_not_fail_phase(self, data_dir, storage, sample_article):
        """A store that fails progress saves does not fail the item."""

        class FlakyStore(WorkItemStore):
            def save(self, item):
                if item.state is ItemState.GENERATING_AUDIO and item.processed_paragraphs:
                    raise OSError("disk busy")
                super().save(item)

        store = FlakyStore(data_dir / "items")
        orchestrator = make_orchestrator(store, storage, FakeExtractor(sample_article))
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        assert item.state is ItemState.AUDIO_READY
        assert store.load(item.id).state is ItemState.AUDIO_READY

    def test_progress_is_monotonic_and_bounded(self, store, storage):
        """Observed progress never decreases or exceeds the total."""
        article = ExtractedArticle(
            title="Long", content="\n\n".join(f"Paragraph {n}." for n in range(5))
        )
        seen = []
        orchestrator = make_orchestrator(
            store,
            storage,
            FakeExtractor(article),
            engine=FakeEngine(durations_ms=[50]),
            progress_listener=lambda item: seen.append(
                (item.processed_paragraphs, item.total_paragraphs)
            ),
        )
        item = new_item(store)

        asyncio.run(orchestrator.process_item(item))

        processed = [done for done, _ in seen]
        assert processed == sorted(processed)
        assert all(done <= total for done, total in seen)
        assert processed[-1] == 5

    def test_throttled_saves(self, recording_store, storage):
        """With a long save interval only the first progress update is saved."""
        article = ExtractedArticle(
            title="Long", content="\n\n".join(f"Paragraph {n}." for n in range(4))
        )
        orchestrator = make_orchestrator(
            recording_store,
            storage,
            FakeExtractor(article),
            engine=FakeEngine(durations_ms=[50]),
            settings=PodcastSettings(output_format="wav", progress_save_interval=3600),
        )
        item = new_item(recording_store)

        asyncio.run(orchestrator.process_item(item))

        generating_saves = recording_store.saved_states.count(ItemState.GENERATING_AUDIO)
        # one for the transition, one throttled progress write
        assert generating_saves == 2


class TestCancellation:
    """External pre-emption of an in-flight item."""

    def test_cancel_propagates_and_releases_lock(self, store, storage, sample_article):
        """Cancellation is not turned into a failure and frees the orchestrator."""

        class HangingEngine(FakeEngine):
            async def synthesize(self, text, voice_id):
                await asyncio.sleep(10)

        orchestrator = make_orchestrator(
            store, storage, FakeExtractor(sample_article), engine=HangingEngine()
        )
        item = new_item(store)

        async def run():
            task = asyncio.create_task(orchestrator.process_item(item))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return orchestrator.is_processing

        assert asyncio.run(run()) is False
        assert item.retry_count == 0
        assert store.load(item.id).state is ItemState.GENERATING_AUDIO


class TestRecoverNext:
    """Tests for recover_next."""

    def test_nothing_pending(self, store, storage, sample_article):
        """With no pending items recover_next is a no-op."""
        extractor = FakeExtractor(sample_article)
        orchestrator = make_orchestrator(store, storage, extractor)

        assert asyncio.run(orchestrator.recover_next()) is None
        assert extractor.urls == []

    def test_processes_oldest_pending_only(self, store, storage, sample_article):
        """Only the pending item with the lowest sort order is processed."""
        extractor = FakeExtractor(sample_article)
        orchestrator = make_orchestrator(store, storage, extractor)
        later = new_item(store, "https://example.com/later", sort_order=200)
        first = new_item(store, "https://example.com/first", sort_order=100)

        processed = asyncio.run(orchestrator.recover_next())

        assert processed.id == first.id
        assert processed.state is ItemState.AUDIO_READY
        assert extractor.urls == ["https://example.com/first"]
        assert store.load(later.id).state is ItemState.PENDING
