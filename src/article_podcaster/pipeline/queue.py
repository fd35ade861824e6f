"""Queue intake, user edits and playback bookkeeping for WorkItems."""

import logging
from datetime import datetime, timezone
from urllib.parse import urlparse

from article_podcaster.exceptions import InvalidTransitionError, InvalidURLError
from article_podcaster.pipeline.store import WorkItemStore
from article_podcaster.storage import AudioStorage
from schemas.work_item import ItemState, WorkItem

logger = logging.getLogger(__name__)

SORT_ORDER_GAP = 100


class QueueService:
    """User-facing operations on the queue.

    Processing state is owned by the orchestrator; this service only makes
    the edits a user (or the share intake) can make: adding, retrying,
    deleting and reordering items, resetting orphans at session start, and
    recording playback.

    Attributes:
        store: Persisted WorkItem records
        storage: Audio file layout, used when deleting items
    """

    def __init__(self, store: WorkItemStore, storage: AudioStorage):
        self.store = store
        self.storage = storage

    def add(self, url: str, title: str = "") -> WorkItem:
        """Queue a URL at the end of the list.

        Raises:
            InvalidURLError: If the URL has no scheme or host
        """
        url = url.strip()
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise InvalidURLError()

        item = WorkItem.create(
            url,
            title=title.strip(),
            sort_order=self.store.max_sort_order() + SORT_ORDER_GAP,
        )
        item.write_log("Added to queue", level="INFO", stage="intake")
        self.store.save(item)
        logger.info(f"Queued {url} as {item.id}")
        return item

    def retry(self, item_id: str) -> WorkItem:
        """Return a failed item to pending so it is processed from scratch.

        Raises:
            ItemNotFoundError: If the item does not exist
            InvalidTransitionError: If the item is not in a failure state
        """
        item = self.store.load(item_id)
        if not item.state.can_retry:
            raise InvalidTransitionError(item.id, item.state, ItemState.PENDING)
        item.reset_to_pending()
        item.write_log("Retry requested", level="INFO", stage="intake")
        self.store.save(item)
        logger.info(f"Item {item_id} reset for retry (attempts so far: {item.retry_count})")
        return item

    def delete(self, item_id: str) -> None:
        """Delete an item and every audio artifact it owns.

        Raises:
            ItemNotFoundError: If the item does not exist
        """
        self.store.load(item_id)
        self.storage.delete_audio(item_id)
        self.store.delete(item_id)
        logger.info(f"Deleted item {item_id}")

    def reorder(self, item_ids: list[str]) -> list[WorkItem]:
        """Renumber items so they appear in the given order.

        Items not named keep their relative order after the named ones.
        """
        items = self.store.list_items()
        by_id = {item.id: item for item in items}
        ordered = [by_id[item_id] for item_id in item_ids if item_id in by_id]
        named = {item.id for item in ordered}
        ordered.extend(item for item in items if item.id not in named)

        for index, item in enumerate(ordered):
            if item.sort_order != index * SORT_ORDER_GAP:
                item.sort_order = index * SORT_ORDER_GAP
                self.store.save(item)
        return ordered

    def move(self, item_id: str, position: int) -> list[WorkItem]:
        """Move one item to a zero-based position in the queue.

        Raises:
            ItemNotFoundError: If the item does not exist
        """
        self.store.load(item_id)
        ids = [item.id for item in self.store.list_items() if item.id != item_id]
        position = max(0, min(position, len(ids)))
        ids.insert(position, item_id)
        return self.reorder(ids)

    def recover_orphans(self) -> list[WorkItem]:
        """Reset items left mid-phase by an interrupted session to pending."""
        orphans = self.store.list_by_state(
            ItemState.EXTRACTING, ItemState.GENERATING_AUDIO
        )
        for item in orphans:
            previous = item.state
            item.reset_to_pending()
            self.storage.remove_paragraph_dir(item.id)
            item.write_log(
                f"Recovered from interrupted {previous.value}",
                level="WARNING",
                stage="recovery",
            )
            self.store.save(item)
            logger.warning(f"Reset orphaned item {item.id} ({previous.value}) to pending")
        return orphans

    def start_playback(self, item_id: str) -> WorkItem:
        """Mark an item as playing.

        Raises:
            ItemNotFoundError: If the item does not exist
            InvalidTransitionError: If the item has no audio yet
        """
        item = self.store.load(item_id)
        if item.state is not ItemState.PLAYING:
            item.transition_to(ItemState.PLAYING)
        item.last_played_at = datetime.now(timezone.utc)
        self.store.save(item)
        return item

    def finish_playback(self, item_id: str) -> WorkItem:
        """Mark an item as played through to the end."""
        item = self.store.load(item_id)
        if item.state is not ItemState.PLAYING:
            item.transition_to(ItemState.PLAYING)
        item.transition_to(ItemState.PLAYED)
        item.has_been_played = True
        item.playback_position = 0.0
        self.store.save(item)
        return item

    def record_playback(
        self, item_id: str, position: float, rate: float | None = None
    ) -> WorkItem:
        """Save the resume position (and optionally the rate) for an item."""
        item = self.store.load(item_id)
        item.playback_position = max(0.0, position)
        if rate is not None:
            item.playback_rate = rate
        self.store.save(item)
        return item
