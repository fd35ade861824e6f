"""Downloadable neural speech engine backed by the Kokoro-82M model."""

import asyncio
import logging
import tempfile
from pathlib import Path

import numpy as np
import soundfile as sf

from article_podcaster.exceptions import EngineError, EngineErrorKind
from article_podcaster.storage import AudioStorage
from schemas.voice import Voice

from .base import AudioUnit, EngineKind, SpeechSynthesisEngine

logger = logging.getLogger(__name__)

KOKORO_REPO_ID = "hexgrad/Kokoro-82M"
KOKORO_MODEL_FILENAME = "kokoro-v1_0.pth"
KOKORO_MODEL_URL = f"https://huggingface.co/{KOKORO_REPO_ID}/resolve/main/{KOKORO_MODEL_FILENAME}"
SAMPLE_RATE = 24000
DEFAULT_VOICE = "af_heart"

VOICES = [
    Voice(id="af_heart", name="Heart", language="en-US", engine="kokoro"),
    Voice(id="af_bella", name="Bella", language="en-US", engine="kokoro"),
    Voice(id="af_nova", name="Nova", language="en-US", engine="kokoro"),
    Voice(id="af_sarah", name="Sarah", language="en-US", engine="kokoro"),
    Voice(id="am_adam", name="Adam", language="en-US", engine="kokoro"),
    Voice(id="am_michael", name="Michael", language="en-US", engine="kokoro"),
    Voice(id="bf_emma", name="Emma", language="en-GB", engine="kokoro"),
    Voice(id="bm_daniel", name="Daniel", language="en-GB", engine="kokoro"),
]
VOICE_IDS = {voice.id for voice in VOICES}


def model_path(storage: AudioStorage) -> Path:
    return storage.models_dir / KOKORO_MODEL_FILENAME


class KokoroEngine(SpeechSynthesisEngine):
    """Neural speech engine that runs Kokoro locally.

    The model weights must be downloaded into the models directory first
    (see ``ModelDownloader``). The ``kokoro`` package is an optional
    dependency and is only imported by ``load_model``.

    Attributes:
        storage: File layout used to locate the model file
        device: Torch device passed to Kokoro (None lets Kokoro choose)
    """

    kind = EngineKind.KOKORO
    native_format = "wav"

    def __init__(self, storage: AudioStorage, device: str | None = None):
        self.storage = storage
        self.device = device
        self._model = None
        self._pipelines: dict[str, object] = {}

    def is_model_loaded(self) -> bool:
        return self._model is not None

    def available_voices(self) -> list[Voice]:
        return list(VOICES)

    async def load_model(self) -> None:
        path = model_path(self.storage)
        if not path.is_file():
            raise EngineError(
                EngineErrorKind.MODEL_NOT_FOUND,
                "Kokoro model not found. Please download it first.",
            )

        try:
            from kokoro import KModel
        except ImportError as e:
            raise EngineError(
                EngineErrorKind.MODEL_NOT_LOADED,
                "The kokoro package is not installed (pip install 'article-podcaster[neural]').",
            ) from e

        def _load():
            model = KModel(repo_id=KOKORO_REPO_ID, model=str(path))
            if self.device:
                model = model.to(self.device)
            return model.eval()

        try:
            self._model = await asyncio.to_thread(_load)
        except Exception as e:
            raise EngineError(
                EngineErrorKind.MODEL_NOT_LOADED, f"Could not load Kokoro model: {e}"
            ) from e
        logger.info(f"Loaded Kokoro model from {path}")

    def _pipeline_for(self, voice: str):
        # Kokoro voices are prefixed with their language code ("a" US, "b" UK)
        lang_code = voice[0]
        if lang_code not in self._pipelines:
            from kokoro import KPipeline

            self._pipelines[lang_code] = KPipeline(
                lang_code=lang_code, repo_id=KOKORO_REPO_ID, model=self._model
            )
        return self._pipelines[lang_code]

    async def synthesize(self, text: str, voice_id: str) -> AudioUnit:
        if not self.is_model_loaded():
            raise EngineError(EngineErrorKind.MODEL_NOT_LOADED)

        voice = voice_id if voice_id in VOICE_IDS else DEFAULT_VOICE
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as tmp:
            output_path = Path(tmp.name)

        try:
            frames = await asyncio.to_thread(self._render, text, voice, output_path)
        except Exception as e:
            output_path.unlink(missing_ok=True)
            raise EngineError(
                EngineErrorKind.SYNTHESIS_FAILED, f"Audio synthesis failed: {e}"
            ) from e

        if frames == 0:
            output_path.unlink(missing_ok=True)
            raise EngineError(EngineErrorKind.SYNTHESIS_FAILED)

        return AudioUnit(path=output_path, format=self.native_format)

    def _render(self, text: str, voice: str, output_path: Path) -> int:
        pipeline = self._pipeline_for(voice)
        frames = 0
        with sf.SoundFile(
            str(output_path), mode="w", samplerate=SAMPLE_RATE, channels=1, subtype="PCM_16"
        ) as out_file:
            for result in pipeline(text, voice=voice, speed=1.0, split_pattern=None):
                if result.audio is None:
                    continue
                audio = np.asarray(result.audio, dtype=np.float32)
                out_file.write(audio)
                frames += len(audio)
        return frames
