"""
Local settings store.

Per-user display and notification preferences, kept as one JSON file per
user under the configured directory. They are not part of the Case Store.
"""

import json
import logging
import os
from pathlib import Path
from typing import Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class NotificationSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_cases: bool = Field(default=True, alias="new-cases")
    case_updates: bool = Field(default=True, alias="case-updates")
    approvals: bool = Field(default=True, alias="approvals")
    team_updates: bool = Field(default=False, alias="team-updates")


class Preferences(BaseModel):
    dark_mode: bool = False
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


class PreferencesStore:
    """Load and save preferences with explicit persistence points."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _file(self, user_id: Union[str, UUID]) -> Path:
        return self.path / f"{UUID(str(user_id))}.json"

    def load(self, user_id: Union[str, UUID]) -> Preferences:
        """Stored preferences, or the defaults when none are saved or the file is unreadable."""
        file = self._file(user_id)
        if not file.exists():
            return Preferences()
        try:
            return Preferences.model_validate(json.loads(file.read_text(encoding="utf-8")))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable preferences for {user_id}: {e}")
            return Preferences()

    def save(self, user_id: Union[str, UUID], preferences: Preferences) -> Preferences:
        file = self._file(user_id)
        self.path.mkdir(parents=True, exist_ok=True)
        tmp = file.with_suffix(".tmp")
        tmp.write_text(
            json.dumps(preferences.model_dump(by_alias=True), indent=2),
            encoding="utf-8",
        )
        os.replace(tmp, file)
        logger.debug(f"Saved preferences for {user_id}")
        return preferences
