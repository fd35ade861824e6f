"""Always-available speech engine backed by the Edge read-aloud service."""

import asyncio
import logging
import re
import tempfile
from contextlib import aclosing
from pathlib import Path
from typing import Any, Callable

import edge_tts

from article_podcaster.exceptions import EngineError, EngineErrorKind
from schemas.voice import Voice

from .base import AudioUnit, EngineKind, SpeechSynthesisEngine

logger = logging.getLogger(__name__)

SYNTHESIS_TIMEOUT_SECONDS = 60.0
DEFAULT_VOICE = "en-US-AriaNeural"
VOICE_ID_PATTERN = re.compile(r"^[a-z]{2,3}-[A-Z]{2}(-\w+)?-\w+Neural$")

VOICES = [
    Voice(id="en-US-AriaNeural", name="Aria", language="en-US", engine="edge"),
    Voice(id="en-US-JennyNeural", name="Jenny", language="en-US", engine="edge"),
    Voice(id="en-US-GuyNeural", name="Guy", language="en-US", engine="edge"),
    Voice(id="en-US-ChristopherNeural", name="Christopher", language="en-US", engine="edge"),
    Voice(id="en-GB-SoniaNeural", name="Sonia", language="en-GB", engine="edge"),
    Voice(id="en-GB-RyanNeural", name="Ryan", language="en-GB", engine="edge"),
    Voice(id="en-AU-NatashaNeural", name="Natasha", language="en-AU", engine="edge"),
    Voice(id="en-IE-EmilyNeural", name="Emily", language="en-IE", engine="edge"),
]


class EdgeSpeechEngine(SpeechSynthesisEngine):
    """Speech engine that needs no model download.

    Audio frames are streamed into a temporary MP3 file as they arrive. A
    zero-length audio frame or the end of the stream completes the call.
    Each call races the stream against a cancellation signal and a hard
    timeout; whichever finishes first decides the outcome.

    Attributes:
        timeout: Seconds before a synthesis call fails with TIMEOUT
    """

    kind = EngineKind.EDGE
    native_format = "mp3"

    def __init__(
        self,
        timeout: float = SYNTHESIS_TIMEOUT_SECONDS,
        communicate_factory: Callable[[str, str], Any] | None = None,
    ):
        """Initialize the engine.

        Args:
            timeout: Seconds before a synthesis call fails with TIMEOUT
            communicate_factory: Builds the streaming session for (text, voice);
                defaults to ``edge_tts.Communicate``
        """
        self.timeout = timeout
        self._communicate_factory = communicate_factory or edge_tts.Communicate
        self._cancel_event: asyncio.Event | None = None

    def is_model_loaded(self) -> bool:
        return True

    async def load_model(self) -> None:
        return None

    def available_voices(self) -> list[Voice]:
        return list(VOICES)

    def resolve_voice(self, voice_id: str) -> str:
        if voice_id and VOICE_ID_PATTERN.match(voice_id):
            return voice_id
        if voice_id:
            logger.debug(f"Voice {voice_id!r} is not an Edge voice, using {DEFAULT_VOICE}")
        return DEFAULT_VOICE

    def cancel(self) -> None:
        """Cancel the synthesis session in flight, if any."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def synthesize(self, text: str, voice_id: str) -> AudioUnit:
        voice = self.resolve_voice(voice_id)
        with tempfile.NamedTemporaryFile(suffix=".mp3", delete=False) as tmp:
            output_path = Path(tmp.name)

        self._cancel_event = asyncio.Event()
        stream_task = asyncio.create_task(self._stream_to_file(text, voice, output_path))
        cancel_task = asyncio.create_task(self._cancel_event.wait())

        try:
            done, _ = await asyncio.wait(
                {stream_task, cancel_task},
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            output_path.unlink(missing_ok=True)
            raise
        finally:
            stream_task.cancel()
            cancel_task.cancel()
            await asyncio.gather(stream_task, cancel_task, return_exceptions=True)
            self._cancel_event = None

        if stream_task in done:
            error = stream_task.exception()
            if error is None:
                return AudioUnit(path=output_path, format=self.native_format)
            output_path.unlink(missing_ok=True)
            if isinstance(error, EngineError):
                raise error
            raise EngineError(
                EngineErrorKind.SYNTHESIS_FAILED, f"Audio synthesis failed: {error}"
            ) from error

        output_path.unlink(missing_ok=True)
        if cancel_task in done:
            logger.warning("Speech synthesis session was cancelled")
            raise EngineError(EngineErrorKind.CANCELLED)

        logger.warning(f"Speech synthesis exceeded {self.timeout:g}s")
        raise EngineError(EngineErrorKind.TIMEOUT)

    async def _stream_to_file(self, text: str, voice: str, output_path: Path) -> None:
        communicate = self._communicate_factory(text, voice)
        received = 0
        with output_path.open("wb") as f:
            async with aclosing(communicate.stream()) as frames:
                async for frame in frames:
                    if frame.get("type") != "audio":
                        continue
                    data = frame.get("data") or b""
                    if not data:
                        break
                    f.write(data)
                    received += len(data)

        if received == 0:
            raise EngineError(
                EngineErrorKind.SYNTHESIS_FAILED, "No audio received from speech service."
            )
