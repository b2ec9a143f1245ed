"""Feed-token preference stores.

The on-disk format is a JSON object mapping token -> preferences object
(``groups``, ``hiddenEvents``, ``showHolidays``, ``colorMap``,
``customNames``, ``hiddenRules``, ``renamingRules``, ``typeMappings``).
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from ..domain.models import UserPreferences

logger = logging.getLogger(__name__)


class PreferencesStore(Protocol):
    async def load(self, token: str) -> Optional[UserPreferences]:
        """Return preferences for ``token`` or None when unknown."""
        ...


def _parse_preferences(token: str, data: Any) -> Optional[UserPreferences]:
    if not isinstance(data, dict):
        return None
    try:
        return UserPreferences.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid stored preferences for token %s...: %s", token[:6], e)
        return None


class InMemoryPreferencesStore:
    """Dictionary-backed store for tests and embedding."""

    def __init__(self, entries: Optional[dict[str, Any]] = None) -> None:
        self._entries: dict[str, Any] = dict(entries or {})

    def put(self, token: str, preferences: Any) -> None:
        self._entries[token] = preferences

    async def load(self, token: str) -> Optional[UserPreferences]:
        data = self._entries.get(token)
        if isinstance(data, UserPreferences):
            return data
        return _parse_preferences(token, data)


class JsonPreferencesStore:
    """Read-only JSON file store, re-read whenever the file's mtime changes.

    The stat and read run in a worker thread.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data: dict[str, Any] = {}
        self._mtime: Optional[float] = None

    def _refresh(self) -> None:
        with self._lock:
            try:
                mtime = self._path.stat().st_mtime
            except FileNotFoundError:
                if self._mtime is not None:
                    logger.warning("Preferences file %s disappeared", self._path)
                self._data = {}
                self._mtime = None
                return

            if mtime == self._mtime:
                return

            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    data = json.load(fh)
                if not isinstance(data, dict):
                    raise ValueError("preferences JSON root must be an object")  # noqa: TRY004
            except (OSError, ValueError) as exc:
                logger.warning("Failed to read preferences file %s: %s", self._path, exc)
                return

            self._data = data
            self._mtime = mtime
            logger.debug("Loaded %d feed tokens from %s", len(data), self._path)

    async def load(self, token: str) -> Optional[UserPreferences]:
        if not token:
            return None
        await asyncio.to_thread(self._refresh)
        return _parse_preferences(token, self._data.get(token))
