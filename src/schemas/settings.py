"""Configuration surface consumed by the processing pipeline."""

from typing import Literal

from pydantic import BaseModel, Field


class PodcastSettings(BaseModel):
    """User-adjustable settings.

    Attributes:
        tts_engine: Engine key ("edge" for the always-available engine,
            "kokoro" for the downloadable neural engine)
        voice_id: Engine-specific voice selector; empty means engine default
        output_format: Container for exported audio files
        progress_save_interval: Minimum seconds between progress writes
    """

    tts_engine: Literal["edge", "kokoro"] = "edge"
    voice_id: str = ""
    output_format: Literal["m4a", "mp3", "wav"] = "m4a"
    progress_save_interval: float = Field(default=1.0, ge=0)

    model_config = {"extra": "ignore"}
