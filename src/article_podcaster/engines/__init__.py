"""Speech synthesis engines."""

from article_podcaster.storage import AudioStorage

from .base import AudioUnit, EngineKind, SpeechSynthesisEngine
from .edge_engine import EdgeSpeechEngine
from .kokoro_engine import KokoroEngine


def create_engine(kind: EngineKind | str, storage: AudioStorage) -> SpeechSynthesisEngine:
    """Build the engine for a settings key.

    Unknown keys fall back to the always-available engine.
    """
    try:
        kind = EngineKind(kind)
    except ValueError:
        return EdgeSpeechEngine()

    if kind is EngineKind.KOKORO:
        return KokoroEngine(storage)
    return EdgeSpeechEngine()


__all__ = [
    "AudioUnit",
    "EdgeSpeechEngine",
    "EngineKind",
    "KokoroEngine",
    "SpeechSynthesisEngine",
    "create_engine",
]
