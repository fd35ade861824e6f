"""Persisted WorkItem record store.

Each item is one JSON file named after its id. Writes go to a temporary
file that is then renamed over the record, so a crash mid-write leaves
the previous version intact.
"""

import logging
import os
from pathlib import Path

from article_podcaster.exceptions import ItemNotFoundError
from schemas.work_item import ItemState, WorkItem

logger: logging.Logger = logging.getLogger(__name__)


def load_item(item_file: Path) -> WorkItem:
    """Load a WorkItem from a JSON file.

    Args:
        item_file: Path to the JSON record

    Returns:
        The validated WorkItem
    """
    return WorkItem.model_validate_json(item_file.read_text())


def dump_item(item: WorkItem, destination: Path) -> None:
    """Save a WorkItem to a JSON file, replacing any previous version.

    Args:
        item: The item to save
        destination: Path where the record should be written
    """
    tmp_path = destination.with_suffix(".tmp")
    tmp_path.write_text(item.model_dump_json(indent=2))
    os.replace(tmp_path, destination)


class WorkItemStore:
    """Query/save access to persisted WorkItems.

    Attributes:
        root: Directory holding one ``<id>.json`` record per item
    """

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"WorkItemStore('{self.root}')"

    def path_for(self, item_id: str) -> Path:
        return self.root / Path(item_id).with_suffix(".json")

    def save(self, item: WorkItem) -> None:
        dump_item(item, self.path_for(item.id))

    def load(self, item_id: str) -> WorkItem:
        """Load one item by id.

        Raises:
            ItemNotFoundError: If no record exists for the id
        """
        path = self.path_for(item_id)
        if not path.is_file():
            raise ItemNotFoundError(item_id)
        return load_item(path)

    def exists(self, item_id: str) -> bool:
        return self.path_for(item_id).is_file()

    def delete(self, item_id: str) -> None:
        self.path_for(item_id).unlink(missing_ok=True)

    def list_items(self) -> list[WorkItem]:
        """All items in queue display order."""
        items = []
        for f in self.root.glob("*.json"):
            try:
                items.append(load_item(f))
            except ValueError as e:
                logger.error(f"Skipping unreadable record {f.name}: {e}")
        return sorted(items, key=lambda item: (item.sort_order, item.created_at))

    def list_by_state(self, *states: ItemState) -> list[WorkItem]:
        return [item for item in self.list_items() if item.state in states]

    def oldest_pending(self) -> WorkItem | None:
        """The pending item with the lowest sort order, if any."""
        pending = self.list_by_state(ItemState.PENDING)
        return pending[0] if pending else None

    def max_sort_order(self) -> int:
        return max((item.sort_order for item in self.list_items()), default=0)
