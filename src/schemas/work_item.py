"""WorkItem schema: one article's processing record."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, Field, model_validator


class InvalidTransitionError(Exception):
    """Raised when a WorkItem is moved along an edge outside the state graph."""

    def __init__(self, item_id: str, current: "ItemState", target: "ItemState"):
        self.item_id = item_id
        self.current = current
        self.target = target
        super().__init__(
            f"Item {item_id}: illegal transition {current.value} -> {target.value}"
        )


class ItemState(str, Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    EXTRACTION_FAILED = "extraction_failed"
    EXTRACTED = "extracted"
    GENERATING_AUDIO = "generating_audio"
    AUDIO_GENERATION_FAILED = "audio_generation_failed"
    AUDIO_READY = "audio_ready"
    PLAYING = "playing"
    PLAYED = "played"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def is_error(self) -> bool:
        return self in (ItemState.EXTRACTION_FAILED, ItemState.AUDIO_GENERATION_FAILED)

    @property
    def is_processing(self) -> bool:
        return self in (ItemState.EXTRACTING, ItemState.GENERATING_AUDIO)

    @property
    def can_retry(self) -> bool:
        return self.is_error

    @property
    def can_play(self) -> bool:
        return self in (ItemState.AUDIO_READY, ItemState.PLAYING, ItemState.PLAYED)


_DISPLAY_NAMES = {
    ItemState.PENDING: "Waiting",
    ItemState.EXTRACTING: "Extracting...",
    ItemState.EXTRACTION_FAILED: "Extraction Failed",
    ItemState.EXTRACTED: "Extracted",
    ItemState.GENERATING_AUDIO: "Generating Audio...",
    ItemState.AUDIO_GENERATION_FAILED: "Audio Failed",
    ItemState.AUDIO_READY: "Ready",
    ItemState.PLAYING: "Playing",
    ItemState.PLAYED: "Played",
}

ALLOWED_TRANSITIONS: dict[ItemState, frozenset[ItemState]] = {
    ItemState.PENDING: frozenset({ItemState.EXTRACTING}),
    ItemState.EXTRACTING: frozenset(
        {ItemState.EXTRACTED, ItemState.EXTRACTION_FAILED}
    ),
    ItemState.EXTRACTION_FAILED: frozenset({ItemState.EXTRACTING}),
    ItemState.EXTRACTED: frozenset(
        {ItemState.GENERATING_AUDIO, ItemState.AUDIO_GENERATION_FAILED}
    ),
    ItemState.GENERATING_AUDIO: frozenset(
        {ItemState.AUDIO_READY, ItemState.AUDIO_GENERATION_FAILED}
    ),
    ItemState.AUDIO_GENERATION_FAILED: frozenset({ItemState.EXTRACTING}),
    ItemState.AUDIO_READY: frozenset({ItemState.PLAYING}),
    ItemState.PLAYING: frozenset({ItemState.PLAYED}),
    ItemState.PLAYED: frozenset({ItemState.PLAYING}),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkItem(BaseModel):
    """Schema for a queued article and its conversion state.

    Playback fields (position, rate, played flag) are owned by the playback
    surface; the processing pipeline never writes them.

    Attributes:
        id: Stable unique identifier, assigned at creation
        url: Origin URL of the article
        domain: Host derived from the URL
        title: Display title (the URL until extraction fills it in)
        extracted_text: Plain text produced by the extraction phase
        audio_file_path: Exported audio file name, relative to the audio directory
        state: Current lifecycle state
        error_message: Last failure message, if any
        retry_count: Number of failed phases; never decreases
        sort_order: Queue display order (not a processing priority)
        total_paragraphs: Paragraph count for the current audio run
        processed_paragraphs: Paragraphs synthesized so far in the current run
        log: Processing history entries
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), frozen=True)
    url: str
    domain: str = ""
    title: str = ""
    author: str | None = None
    excerpt: str | None = None

    extracted_text: str | None = None
    word_count: int | None = None

    audio_file_path: str | None = None
    audio_duration_seconds: float | None = None

    state: ItemState = ItemState.PENDING
    error_message: str | None = None
    retry_count: int = 0

    playback_position: float = 0.0
    playback_rate: float = 1.0
    has_been_played: bool = False

    sort_order: int = 0

    created_at: datetime = Field(default_factory=_utcnow)
    extracted_at: datetime | None = None
    audio_generated_at: datetime | None = None
    last_played_at: datetime | None = None

    total_paragraphs: int | None = None
    processed_paragraphs: int | None = None

    log: list[dict] = []

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def _check_progress(self) -> "WorkItem":
        if (
            self.total_paragraphs is not None
            and self.processed_paragraphs is not None
            and self.processed_paragraphs > self.total_paragraphs
        ):
            raise ValueError("processed_paragraphs cannot exceed total_paragraphs")
        return self

    @classmethod
    def create(cls, url: str, title: str = "", sort_order: int = 0) -> "WorkItem":
        """Create a new pending item for a URL."""
        domain = urlparse(url).hostname or ""
        return cls(
            url=url,
            domain=domain,
            title=title or url,
            sort_order=sort_order,
        )

    @property
    def generation_progress(self) -> float:
        if not self.total_paragraphs or self.processed_paragraphs is None:
            return 0.0
        return self.processed_paragraphs / self.total_paragraphs

    def transition_to(self, target: ItemState) -> None:
        """Move to ``target`` if the state graph allows it.

        Raises:
            InvalidTransitionError: If the edge is not part of the graph
        """
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.id, self.state, target)
        self.state = target

    def reset_to_pending(self) -> None:
        """Return a failed or orphaned item to the start of the pipeline.

        Used by explicit user retry (failure states) and by crash recovery
        (in-progress states). The retry counter is left untouched.

        Raises:
            InvalidTransitionError: If the item is neither failed nor in progress
        """
        if not (self.state.is_error or self.state.is_processing):
            raise InvalidTransitionError(self.id, self.state, ItemState.PENDING)
        self.state = ItemState.PENDING
        self.error_message = None
        self.total_paragraphs = None
        self.processed_paragraphs = None

    def record_failure(self, target: ItemState, message: str) -> None:
        """Move to a failure state, keeping the error and bumping the retry count."""
        self.transition_to(target)
        self.error_message = message
        self.retry_count += 1

    def write_log(
        self, message: str, level: str | None = None, stage: str | None = None
    ) -> None:
        """Add a log entry to the item's processing history.

        Args:
            message: Log message describing the event
            level: Log level (e.g., 'INFO', 'ERROR', 'WARNING')
            stage: Pipeline stage name where the event occurred
        """
        entry: dict = {"timestamp": str(_utcnow()), "message": message}
        if stage:
            entry["stage"] = stage
        if level:
            entry["level"] = level

        self.log.append(entry)
