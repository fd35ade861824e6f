"""Load and save user settings as JSON."""

import logging
from pathlib import Path

from pydantic import ValidationError

from schemas.settings import PodcastSettings

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"


class SettingsStore:
    """JSON-backed PodcastSettings.

    A missing or invalid file yields the defaults; the problem is logged.
    """

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def in_data_dir(cls, data_dir: Path) -> "SettingsStore":
        return cls(data_dir / SETTINGS_FILENAME)

    def load(self) -> PodcastSettings:
        if not self.path.is_file():
            return PodcastSettings()
        try:
            return PodcastSettings.model_validate_json(self.path.read_text())
        except ValidationError as e:
            logger.error(f"Invalid settings in {self.path}, using defaults: {e}")
            return PodcastSettings()

    def save(self, settings: PodcastSettings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(settings.model_dump_json(indent=2))

    def update(self, **changes) -> PodcastSettings:
        """Apply changes on top of the stored settings and save them.

        Raises:
            ValidationError: If a changed value is invalid
        """
        settings = PodcastSettings.model_validate(
            {**self.load().model_dump(), **changes}
        )
        self.save(settings)
        return settings
