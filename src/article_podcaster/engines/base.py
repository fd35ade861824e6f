"""Base classes for speech synthesis engines.

Every engine converts one paragraph of text into one audio unit. The set
of engines is closed: see ``EngineKind`` and ``create_engine``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from schemas.voice import Voice


class EngineKind(str, Enum):
    EDGE = "edge"
    KOKORO = "kokoro"


@dataclass
class AudioUnit:
    """Synthesized audio for exactly one paragraph.

    Attributes:
        path: File holding the audio
        format: Container format of the file (e.g. "mp3", "wav")
    """

    path: Path
    format: str


class SpeechSynthesisEngine(ABC):
    """Abstract base class for speech synthesis engines.

    Failures are raised as ``EngineError`` with the matching
    ``EngineErrorKind``.
    """

    kind: EngineKind
    native_format: str

    @abstractmethod
    def is_model_loaded(self) -> bool:
        pass

    @abstractmethod
    async def load_model(self) -> None:
        """Make the engine ready to synthesize.

        Raises:
            EngineError: If the model is missing or cannot be loaded
        """
        pass

    @abstractmethod
    def available_voices(self) -> list[Voice]:
        pass

    @abstractmethod
    async def synthesize(self, text: str, voice_id: str) -> AudioUnit:
        """Synthesize one paragraph.

        Args:
            text: Paragraph text
            voice_id: Engine-specific voice identifier; empty selects the default

        Returns:
            AudioUnit in the engine's native format, in a temporary location

        Raises:
            EngineError: On timeout, cancellation or synthesis failure
        """
        pass
