"""Custom exceptions for the article processing pipeline."""

from enum import Enum

from schemas.work_item import InvalidTransitionError


class PodcasterError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, *args, **kwargs):
        self.message = message
        super().__init__(message, *args, **kwargs)


class ExtractionError(PodcasterError):
    """Raised when article content cannot be extracted."""

    pass


class InvalidURLError(ExtractionError):
    """Raised when the article URL is not a fetchable http(s) URL."""

    def __init__(self, message: str = "The URL is not valid."):
        super().__init__(message)


class NoContentError(ExtractionError):
    """Raised when the page yields no readable text."""

    def __init__(self, message: str = "Could not extract article content from this page."):
        super().__init__(message)


class EngineErrorKind(str, Enum):
    MODEL_NOT_FOUND = "model_not_found"
    MODEL_NOT_LOADED = "model_not_loaded"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    SYNTHESIS_FAILED = "synthesis_failed"


class EngineError(PodcasterError):
    """Raised when a speech synthesis engine fails to load or synthesize."""

    def __init__(self, kind: EngineErrorKind, message: str | None = None):
        self.kind = kind
        super().__init__(message or _ENGINE_MESSAGES[kind])


_ENGINE_MESSAGES = {
    EngineErrorKind.MODEL_NOT_FOUND: "Speech model not found. Please download it first.",
    EngineErrorKind.MODEL_NOT_LOADED: "Speech model is not loaded.",
    EngineErrorKind.TIMEOUT: "Speech synthesis timed out.",
    EngineErrorKind.CANCELLED: "Speech synthesis was cancelled.",
    EngineErrorKind.SYNTHESIS_FAILED: "Audio synthesis failed.",
}


class PipelineError(PodcasterError):
    """Raised when the paragraph synthesis pipeline cannot run."""

    pass


class EmptyInputError(PipelineError):
    """Raised when there are no paragraphs to synthesize."""

    def __init__(self, message: str = "No text to generate audio from."):
        super().__init__(message)


class AssemblyErrorKind(str, Enum):
    COMPOSITION_FAILED = "composition_failed"
    EXPORT_FAILED = "export_failed"


class AssemblyError(PodcasterError):
    """Raised when paragraph audio cannot be combined or exported."""

    def __init__(self, kind: AssemblyErrorKind, message: str | None = None):
        self.kind = kind
        if message is None:
            message = (
                "Failed to create audio composition."
                if kind is AssemblyErrorKind.COMPOSITION_FAILED
                else "Failed to export audio file."
            )
        super().__init__(message)


class ItemNotFoundError(PodcasterError):
    """Raised when a WorkItem id is not present in the store."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"No item with id {item_id}")


__all__ = [
    "AssemblyError",
    "AssemblyErrorKind",
    "EmptyInputError",
    "EngineError",
    "EngineErrorKind",
    "ExtractionError",
    "InvalidTransitionError",
    "InvalidURLError",
    "ItemNotFoundError",
    "NoContentError",
    "PipelineError",
    "PodcasterError",
]
