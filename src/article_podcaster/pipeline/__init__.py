"""Article processing pipeline: record store, orchestration and scheduling."""

from .background import BackgroundWorker
from .orchestrator import Extractor, ProcessingOrchestrator
from .queue import SORT_ORDER_GAP, QueueService
from .store import WorkItemStore, dump_item, load_item
from .synthesis import ParagraphSynthesisPipeline

__all__ = [
    "BackgroundWorker",
    "Extractor",
    "ParagraphSynthesisPipeline",
    "ProcessingOrchestrator",
    "QueueService",
    "SORT_ORDER_GAP",
    "WorkItemStore",
    "dump_item",
    "load_item",
]
