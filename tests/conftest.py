"""Pytest fixtures for Article Podcaster tests."""

import tempfile
from pathlib import Path

import pytest
from pydub import AudioSegment

from article_podcaster.engines.base import AudioUnit, EngineKind, SpeechSynthesisEngine
from article_podcaster.exceptions import EngineError, EngineErrorKind
from article_podcaster.pipeline.store import WorkItemStore
from article_podcaster.settings import SettingsStore
from article_podcaster.storage import AudioStorage
from schemas.extracted_article import ExtractedArticle
from schemas.voice import Voice


def write_wav(path: Path, milliseconds: int) -> Path:
    """Write a silent mono WAV file of the given length."""
    path.parent.mkdir(parents=True, exist_ok=True)
    AudioSegment.silent(duration=milliseconds, frame_rate=24000).export(
        str(path), format="wav"
    ).close()
    return path


class FakeEngine(SpeechSynthesisEngine):
    """Engine that writes silent WAV units, one per call.

    Attributes:
        durations_ms: Length of each unit in call order (the last value repeats)
        calls: (text, voice_id) for every synthesize call
    """

    kind = EngineKind.EDGE
    native_format = "wav"

    def __init__(
        self,
        durations_ms: list[int] | None = None,
        loaded: bool = True,
        load_error: EngineError | None = None,
        fail_on_call: int | None = None,
        error: Exception | None = None,
    ):
        self.durations_ms = durations_ms or [500]
        self.loaded = loaded
        self.load_error = load_error
        self.fail_on_call = fail_on_call
        self.error = error or EngineError(EngineErrorKind.SYNTHESIS_FAILED)
        self.calls: list[tuple[str, str]] = []
        self.load_calls = 0

    def is_model_loaded(self) -> bool:
        return self.loaded

    async def load_model(self) -> None:
        self.load_calls += 1
        if self.load_error is not None:
            raise self.load_error
        self.loaded = True

    def available_voices(self) -> list[Voice]:
        return [Voice(id="fake", name="Fake", language="en-US", engine="edge")]

    async def synthesize(self, text: str, voice_id: str) -> AudioUnit:
        index = len(self.calls)
        self.calls.append((text, voice_id))
        if self.fail_on_call is not None and index == self.fail_on_call:
            raise self.error
        duration = self.durations_ms[min(index, len(self.durations_ms) - 1)]
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as tmp:
            path = Path(tmp.name)
        write_wav(path, duration)
        return AudioUnit(path=path, format="wav")


class FakeExtractor:
    """Extractor returning a fixed article, or raising a fixed error."""

    def __init__(self, article: ExtractedArticle | None = None, error: Exception | None = None):
        self.article = article
        self.error = error
        self.urls: list[str] = []

    async def extract(self, url: str) -> ExtractedArticle:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.article


@pytest.fixture
def data_dir(tmp_path):
    """Temporary data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def storage(data_dir):
    return AudioStorage(data_dir, audio_extension="wav")


@pytest.fixture
def store(data_dir):
    return WorkItemStore(data_dir / "items")


@pytest.fixture
def settings_store(data_dir):
    return SettingsStore.in_data_dir(data_dir)


@pytest.fixture
def sample_article():
    """Extraction result with two paragraphs."""
    return ExtractedArticle(
        title="A Test Article",
        author="Jane Writer",
        content="Para one.\n\nPara two.",
        excerpt="A short summary.",
    )


@pytest.fixture
def sample_html():
    """Article page with metadata, navigation noise and three paragraphs."""
    return """<!DOCTYPE html>
<html>
<head>
  <title>Fallback Title | Example News</title>
  <meta property="og:title" content="How Rivers Shape Cities">
  <meta name="author" content="Sam Rivera">
  <meta name="description" content="Rivers decide where cities grow.">
  <script>var tracking = true;</script>
</head>
<body>
  <nav><p>Home | World | Sports</p></nav>
  <article>
    <h1>How Rivers Shape Cities</h1>
    <p>Rivers were the first highways.</p>
    <p>Trade followed the water &amp; so did people.</p>
    <p>Advertisement</p>
    <p>Today, waterfronts are parks.</p>
  </article>
  <footer><p>Copyright Example News</p></footer>
</body>
</html>
"""
