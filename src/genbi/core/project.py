"""
GenBI Core - Project.

The process serves a single project configured through ProjectSettings.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from genbi.config import ProjectSettings
from genbi.exceptions import ValidationException

logger = logging.getLogger(__name__)

# Language codes to the names the AI service expects.
LANGUAGES: dict[str, str] = {
    "EN": "English",
    "ES": "Spanish",
    "FR": "French",
    "DE": "German",
    "PT": "Portuguese",
    "JA": "Japanese",
    "KO": "Korean",
    "ZH_TW": "Traditional Chinese",
    "ZH_CN": "Simplified Chinese",
}


class Project(BaseModel):
    id: int
    display_name: str
    language: str = "EN"

    @property
    def ai_language(self) -> str:
        return LANGUAGES.get(self.language.upper(), LANGUAGES["EN"])


class ProjectService:
    """Current project and its manifest."""

    def __init__(self, settings: ProjectSettings):
        self._settings = settings

    async def get_current_project(self) -> Project:
        return Project(
            id=self._settings.id,
            display_name=self._settings.display_name,
            language=self._settings.language,
        )

    def load_manifest(self) -> dict[str, Any]:
        """Read the configured manifest file; an unset path means an empty manifest."""
        if not self._settings.manifest_path:
            return {}
        path = Path(self._settings.manifest_path)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load manifest {path}: {e}")
            raise ValidationException(f"Manifest could not be loaded: {path}") from e
