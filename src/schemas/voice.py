"""Voice descriptor shared by synthesis engines."""

from pydantic import BaseModel


class Voice(BaseModel):
    """A selectable synthesis voice.

    Attributes:
        id: Engine-specific voice identifier
        name: Human-readable voice name
        language: BCP-47 language tag
        engine: Key of the engine that provides the voice
    """

    id: str
    name: str
    language: str
    engine: str

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.language})"
