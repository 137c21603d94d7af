from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .question_generator import GenerationConfig

logger = logging.getLogger(__name__)

SETTINGS_PATH_ENV = "QUANT_PREP_SETTINGS_PATH"
HISTORY_DB_PATH_ENV = "QUANT_PREP_DB_PATH"
LOG_LEVEL_ENV = "QUANT_PREP_LOG_LEVEL"

# Input widget limits; the engine accepts anything.
DIGITS_RANGE = (1, 5)
DECIMALS_RANGE = (0, 3)


def default_history_db_path() -> Path:
    explicit = os.environ.get(HISTORY_DB_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".quant_prep_history.sqlite3"


@dataclass(frozen=True, slots=True)
class UserSettings:
    username: str = ""
    generation: GenerationConfig = field(default_factory=GenerationConfig)

    def to_dict(self) -> dict[str, Any]:
        return {"username": self.username, "generation": self.generation.to_dict()}

    @classmethod
    def from_dict(cls, data: object) -> "UserSettings":
        if not isinstance(data, dict):
            return cls()
        return cls(
            username=str(data.get("username", "") or "").strip(),
            generation=GenerationConfig.from_dict(data.get("generation")),
        )


class SettingsStore:
    """JSON file holding the remembered username and last quiz configuration."""

    _version = 1

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._settings = UserSettings()
        self._load()

    @classmethod
    def default_path(cls) -> Path:
        explicit = os.environ.get(SETTINGS_PATH_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return Path.home() / ".quant_prep_settings.json"

    @property
    def path(self) -> Path:
        return self._path

    @property
    def settings(self) -> UserSettings:
        return self._settings

    @property
    def username(self) -> str:
        return self._settings.username

    @property
    def generation(self) -> GenerationConfig:
        return self._settings.generation

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return
        if not isinstance(payload, dict):
            return
        self._settings = UserSettings.from_dict(payload.get("settings"))

    def save(self) -> bool:
        payload = {"version": self._version, "settings": self._settings.to_dict()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning("Could not save settings to %s: %s", self._path, exc)
            return False
        return True

    def set_username(self, username: str) -> None:
        self._settings = replace(self._settings, username=str(username).strip())
        self.save()

    def clear_username(self) -> None:
        self.set_username("")

    def set_generation(self, config: GenerationConfig) -> None:
        self._settings = replace(self._settings, generation=config)
        self.save()
