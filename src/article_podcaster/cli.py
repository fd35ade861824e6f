"""Command-line interface for article-podcaster."""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from article_podcaster.clients import (
    ArticleExtractor,
    ModelDownloader,
    delete_kokoro_model,
    is_kokoro_model_downloaded,
)
from article_podcaster.engines import EngineKind, create_engine
from article_podcaster.exceptions import PodcasterError
from article_podcaster.pipeline import (
    BackgroundWorker,
    ProcessingOrchestrator,
    QueueService,
    WorkItemStore,
)
from article_podcaster.settings import SettingsStore
from article_podcaster.storage import AudioStorage, resolve_data_dir
from schemas.work_item import InvalidTransitionError, ItemState, WorkItem

ITEMS_DIR_NAME = "items"
DEFAULT_POLL_INTERVAL = 5.0

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


@dataclass
class App:
    """Collaborators shared by every command, built from the data directory."""

    data_dir: Path
    store: WorkItemStore
    storage: AudioStorage
    settings_store: SettingsStore
    queue: QueueService

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "App":
        data_dir = resolve_data_dir(args.data_dir)
        settings_store = SettingsStore.in_data_dir(data_dir)
        settings = settings_store.load()
        store = WorkItemStore(data_dir / ITEMS_DIR_NAME)
        storage = AudioStorage(data_dir, audio_extension=settings.output_format)
        return cls(
            data_dir=data_dir,
            store=store,
            storage=storage,
            settings_store=settings_store,
            queue=QueueService(store, storage),
        )

    def orchestrator(self, extractor: ArticleExtractor) -> ProcessingOrchestrator:
        return ProcessingOrchestrator(
            store=self.store,
            extractor=extractor,
            storage=self.storage,
            settings_loader=self.settings_store.load,
            progress_listener=_log_progress,
        )

    def find_item(self, item_ref: str) -> WorkItem:
        """Load an item by full id or unique id prefix.

        Raises:
            PodcasterError: If no item or more than one item matches
        """
        if self.store.exists(item_ref):
            return self.store.load(item_ref)
        matches = [item for item in self.store.list_items() if item.id.startswith(item_ref)]
        if len(matches) == 1:
            return matches[0]
        if not matches:
            raise PodcasterError(f"No item matches {item_ref}")
        raise PodcasterError(f"{len(matches)} items match {item_ref}; use a longer id")


def _log_progress(item: WorkItem) -> None:
    logger.info(f"  {item.processed_paragraphs}/{item.total_paragraphs} paragraphs")


def _summary(item: WorkItem) -> str:
    line = f"{item.id[:8]}  {item.state.display_name:<20} {item.title}"
    if item.state.is_error and item.error_message:
        line += f"  [{item.error_message}]"
    return line


def add_item(args: argparse.Namespace) -> int:
    """Execute the add command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    app = App.from_args(args)
    try:
        item = app.queue.add(args.url, title=args.title or "")
    except PodcasterError as e:
        logger.error(f"Failed to add {args.url}: {e}")
        return 1

    logger.info(f"Queued {item.url}")
    logger.info(f"  Id: {item.id}")

    if args.process:
        return asyncio.run(_process(app, item))
    return 0


def list_items(args: argparse.Namespace) -> int:
    """Execute the list command."""
    app = App.from_args(args)
    items = app.store.list_items()
    if args.state:
        items = [item for item in items if item.state.value == args.state]

    if not items:
        logger.info("Queue is empty")
        return 0

    for item in items:
        print(_summary(item))
    return 0


def show_item(args: argparse.Namespace) -> int:
    """Execute the show command."""
    app = App.from_args(args)
    try:
        item = app.find_item(args.item)
    except PodcasterError as e:
        logger.error(str(e))
        return 1

    if args.json:
        print(item.model_dump_json(indent=2))
        return 0

    print(f"Id:       {item.id}")
    print(f"Title:    {item.title}")
    print(f"URL:      {item.url}")
    print(f"State:    {item.state.display_name}")
    if item.author:
        print(f"Author:   {item.author}")
    if item.word_count is not None:
        print(f"Words:    {item.word_count}")
    if item.total_paragraphs:
        print(
            f"Progress: {item.processed_paragraphs}/{item.total_paragraphs} "
            f"({item.generation_progress:.0%})"
        )
    if item.audio_file_path:
        print(f"Audio:    {app.storage.resolve_audio_file(item.audio_file_path)}")
    if item.audio_duration_seconds is not None:
        print(f"Duration: {item.audio_duration_seconds:.1f}s")
    if item.error_message:
        print(f"Error:    {item.error_message}")
    print(f"Retries:  {item.retry_count}")
    for entry in item.log:
        stage = f"[{entry['stage']}] " if "stage" in entry else ""
        print(f"  {entry['timestamp']} {entry.get('level', '')} {stage}{entry['message']}")
    return 0


async def _process(app: App, item: WorkItem) -> int:
    async with ArticleExtractor() as extractor:
        orchestrator = app.orchestrator(extractor)
        processed = await orchestrator.process_item(item)

    logger.info(f"{item.title}: {item.state.display_name}")
    if item.error_message:
        logger.error(f"  {item.error_message}")
    return 0 if processed else 1


def process_item(args: argparse.Namespace) -> int:
    """Execute the process command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 if the item reached audio_ready, non-zero otherwise)
    """
    app = App.from_args(args)
    try:
        item = app.find_item(args.item)
    except PodcasterError as e:
        logger.error(str(e))
        return 1

    if not (item.state is ItemState.PENDING or item.state.can_retry):
        logger.error(f"Item {item.id} is {item.state.display_name}; nothing to process")
        return 1

    return asyncio.run(_process(app, item))


async def _process_next(app: App, budget: float | None) -> bool:
    async with ArticleExtractor() as extractor:
        worker = BackgroundWorker(app.orchestrator(extractor), app.queue)
        return await worker.run_once(budget)


def process_next(args: argparse.Namespace) -> int:
    """Execute the process-next command."""
    app = App.from_args(args)
    app.queue.recover_orphans()
    completed = asyncio.run(_process_next(app, args.budget))
    return 0 if completed else 1


async def _watch(app: App, poll_interval: float) -> None:
    async with ArticleExtractor() as extractor:
        worker = BackgroundWorker(
            app.orchestrator(extractor), app.queue, poll_interval=poll_interval
        )
        await worker.run_forever()


def watch(args: argparse.Namespace) -> int:
    """Execute the watch command."""
    app = App.from_args(args)
    logger.info(f"Watching {app.store.root} (Ctrl-C to stop)")
    asyncio.run(_watch(app, args.poll_interval))
    return 0


def retry_item(args: argparse.Namespace) -> int:
    """Execute the retry command."""
    app = App.from_args(args)
    try:
        item = app.queue.retry(app.find_item(args.item).id)
    except (PodcasterError, InvalidTransitionError) as e:
        logger.error(f"Cannot retry {args.item}: {e}")
        return 1

    logger.info(f"Item {item.id} queued for retry")
    if args.process:
        return asyncio.run(_process(app, item))
    return 0


def delete_item(args: argparse.Namespace) -> int:
    """Execute the delete command."""
    app = App.from_args(args)
    try:
        item = app.find_item(args.item)
        app.queue.delete(item.id)
    except PodcasterError as e:
        logger.error(str(e))
        return 1

    logger.info(f"Deleted {item.title}")
    return 0


def move_item(args: argparse.Namespace) -> int:
    """Execute the move command."""
    app = App.from_args(args)
    try:
        item = app.find_item(args.item)
    except PodcasterError as e:
        logger.error(str(e))
        return 1

    app.queue.move(item.id, args.position)
    logger.info(f"Moved {item.title} to position {args.position}")
    return 0


def play_item(args: argparse.Namespace) -> int:
    """Execute the play command.

    Marks the item as playing, records the reported position and rate, and
    prints the audio file path for an external player.
    """
    app = App.from_args(args)
    try:
        item = app.queue.start_playback(app.find_item(args.item).id)
        if args.position is not None or args.rate is not None:
            item = app.queue.record_playback(
                item.id,
                args.position if args.position is not None else item.playback_position,
                args.rate,
            )
    except (PodcasterError, InvalidTransitionError) as e:
        logger.error(f"Cannot play {args.item}: {e}")
        return 1

    if not item.audio_file_path:
        logger.error(f"Item {item.id} has no audio file")
        return 1

    path = app.storage.resolve_audio_file(item.audio_file_path)
    if not path.is_file():
        logger.error(f"Audio file missing: {path}")
        return 1

    print(path)
    logger.info(
        f"Resume at {item.playback_position:.1f}s, rate {item.playback_rate:g}x"
    )
    return 0


def mark_played(args: argparse.Namespace) -> int:
    """Execute the played command."""
    app = App.from_args(args)
    try:
        item = app.queue.finish_playback(app.find_item(args.item).id)
    except (PodcasterError, InvalidTransitionError) as e:
        logger.error(f"Cannot mark {args.item} as played: {e}")
        return 1

    logger.info(f"Marked {item.title} as played")
    return 0


def list_voices(args: argparse.Namespace) -> int:
    """Execute the voices command."""
    app = App.from_args(args)
    engine_key = args.engine or app.settings_store.load().tts_engine
    engine = create_engine(engine_key, app.storage)
    for voice in engine.available_voices():
        print(f"{voice.id:<24} {voice.display_name}")
    return 0


def configure(args: argparse.Namespace) -> int:
    """Execute the config command.

    With no ``--set`` options, prints the current settings.
    """
    app = App.from_args(args)
    if args.set:
        changes = {}
        for assignment in args.set:
            key, sep, value = assignment.partition("=")
            if not sep:
                logger.error(f"Expected KEY=VALUE, got {assignment}")
                return 1
            changes[key.strip()] = value.strip()
        try:
            settings = app.settings_store.update(**changes)
        except ValidationError as e:
            logger.error(f"Invalid settings: {e}")
            return 1
        logger.info(f"Saved settings to {app.settings_store.path}")
    else:
        settings = app.settings_store.load()

    for key, value in settings.model_dump().items():
        print(f"{key} = {value}")
    return 0


async def _download_model(app: App) -> None:
    last_reported = -1

    def report(received: int, total: int | None) -> None:
        nonlocal last_reported
        if total:
            percent = received * 100 // total
            if percent // 10 > last_reported:
                last_reported = percent // 10
                logger.info(f"  {percent}% of {total // 1_000_000} MB")

    async with ModelDownloader({"timeout": 600}) as downloader:
        await downloader.download_kokoro_model(app.storage, on_progress=report)


def download_model(args: argparse.Namespace) -> int:
    """Execute the download-model command."""
    app = App.from_args(args)

    if args.delete:
        delete_kokoro_model(app.storage)
        return 0

    if is_kokoro_model_downloaded(app.storage) and not args.force:
        logger.info("Neural voice model is already downloaded")
        return 0

    try:
        asyncio.run(_download_model(app))
    except PodcasterError as e:
        logger.error(f"Failed to download model: {e}")
        return 1

    logger.info("Neural voice model downloaded")
    logger.info(f"  Enable it with: config --set tts_engine={EngineKind.KOKORO.value}")
    return 0


def show_storage(args: argparse.Namespace) -> int:
    """Execute the storage command."""
    app = App.from_args(args)
    if args.clear:
        app.storage.delete_all_audio()

    print(f"Audio: {app.storage.formatted_storage_used()} in {app.storage.audio_dir}")
    print(
        "Neural model: "
        + ("downloaded" if is_kokoro_model_downloaded(app.storage) else "not downloaded")
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        prog="article-podcaster",
        description="Turn web articles into a queue of spoken-audio episodes",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for the queue, audio and models "
        "(default: $ARTICLE_PODCASTER_HOME or ~/.article-podcaster)",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    add_parser = subparsers.add_parser("add", help="Add an article URL to the queue")
    add_parser.add_argument("url", help="Article URL")
    add_parser.add_argument("--title", help="Title to show until extraction finishes")
    add_parser.add_argument(
        "--process", action="store_true", help="Process the item right away"
    )
    add_parser.set_defaults(func=add_item)

    list_parser = subparsers.add_parser("list", help="List queued items in order")
    list_parser.add_argument("--state", help="Only show items in this state")
    list_parser.set_defaults(func=list_items)

    show_parser = subparsers.add_parser("show", help="Show one item and its history")
    show_parser.add_argument("item", help="Item id or unique id prefix")
    show_parser.add_argument("--json", action="store_true", help="Print the raw record")
    show_parser.set_defaults(func=show_item)

    process_parser = subparsers.add_parser(
        "process",
        help="Extract and generate audio for one item",
        description="Run extraction and audio generation for a pending or failed item.",
    )
    process_parser.add_argument("item", help="Item id or unique id prefix")
    process_parser.set_defaults(func=process_item)

    next_parser = subparsers.add_parser(
        "process-next",
        help="Process the oldest pending item",
        description="Reset interrupted items, then process the oldest pending item "
        "within an optional time budget.",
    )
    next_parser.add_argument(
        "--budget",
        type=float,
        default=None,
        help="Seconds allowed before the run is abandoned (default: no limit)",
    )
    next_parser.set_defaults(func=process_next)

    watch_parser = subparsers.add_parser(
        "watch", help="Keep processing pending items until interrupted"
    )
    watch_parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between checks when the queue is idle (default: {DEFAULT_POLL_INTERVAL})",
    )
    watch_parser.set_defaults(func=watch)

    retry_parser = subparsers.add_parser("retry", help="Reset a failed item to pending")
    retry_parser.add_argument("item", help="Item id or unique id prefix")
    retry_parser.add_argument(
        "--process", action="store_true", help="Process the item right away"
    )
    retry_parser.set_defaults(func=retry_item)

    delete_parser = subparsers.add_parser("delete", help="Delete an item and its audio")
    delete_parser.add_argument("item", help="Item id or unique id prefix")
    delete_parser.set_defaults(func=delete_item)

    move_parser = subparsers.add_parser("move", help="Move an item within the queue")
    move_parser.add_argument("item", help="Item id or unique id prefix")
    move_parser.add_argument("position", type=int, help="Zero-based queue position")
    move_parser.set_defaults(func=move_item)

    play_parser = subparsers.add_parser(
        "play", help="Mark an item as playing and print its audio file"
    )
    play_parser.add_argument("item", help="Item id or unique id prefix")
    play_parser.add_argument("--position", type=float, help="Playback position in seconds")
    play_parser.add_argument("--rate", type=float, help="Playback rate")
    play_parser.set_defaults(func=play_item)

    played_parser = subparsers.add_parser("played", help="Mark an item as played")
    played_parser.add_argument("item", help="Item id or unique id prefix")
    played_parser.set_defaults(func=mark_played)

    voices_parser = subparsers.add_parser("voices", help="List available voices")
    voices_parser.add_argument(
        "--engine",
        choices=[kind.value for kind in EngineKind],
        help="Engine to list voices for (default: configured engine)",
    )
    voices_parser.set_defaults(func=list_voices)

    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_parser.add_argument(
        "--set",
        action="append",
        metavar="KEY=VALUE",
        help="Change a setting (repeatable)",
    )
    config_parser.set_defaults(func=configure)

    model_parser = subparsers.add_parser(
        "download-model", help="Download or delete the neural voice model"
    )
    model_parser.add_argument(
        "--delete", action="store_true", help="Delete the downloaded model"
    )
    model_parser.add_argument(
        "--force", action="store_true", help="Download even if already present"
    )
    model_parser.set_defaults(func=download_model)

    storage_parser = subparsers.add_parser("storage", help="Show disk usage")
    storage_parser.add_argument(
        "--clear", action="store_true", help="Delete all generated audio"
    )
    storage_parser.set_defaults(func=show_storage)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
