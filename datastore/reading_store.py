from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from app.schemas import Reading
from errors import StorageError
from settings import get_settings

logger = logging.getLogger(__name__)


class ReadingStore:
    """Append-only store of location readings backed by a JSON-lines file."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._items: List[Reading] = []
        self._next_id = 1
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append(self, reading: Reading) -> int:
        """Persist ``reading`` under a freshly assigned id and return that id."""
        with self._lock:
            assigned_id = self._next_id
            stored = reading.model_copy(update={"id": assigned_id})
            self._persist(stored)
            self._items.append(stored)
            self._next_id = assigned_id + 1
        return assigned_id

    def query_range(self, start_millis: int, end_millis: int) -> List[Reading]:
        """Readings captured within ``[start_millis, end_millis]``, newest first."""
        if start_millis > end_millis:
            return []
        with self._lock:
            matches = [
                item
                for item in self._items
                if start_millis <= item.captured_at_millis <= end_millis
            ]
        matches.sort(key=lambda item: (item.captured_at_millis, item.id or 0), reverse=True)
        return matches

    def latest(self) -> Optional[Reading]:
        with self._lock:
            if not self._items:
                return None
            return max(self._items, key=lambda item: (item.captured_at_millis, item.id or 0))

    def count(self) -> int:
        with self._lock:
            return len(self._items)

    def _persist(self, reading: Reading) -> None:
        if not self.persistence_path:
            return
        line = json.dumps(reading.model_dump(mode="json", by_alias=True), sort_keys=True)
        try:
            with self.persistence_path.open("ab+") as handle:
                handle.seek(0, os.SEEK_END)
                prefix = b""
                # a torn earlier write must not swallow this row
                if handle.tell() > 0:
                    handle.seek(-1, os.SEEK_END)
                    if handle.read(1) != b"\n":
                        prefix = b"\n"
                handle.write(prefix + (line + "\n").encode("utf-8"))
        except OSError as exc:
            raise StorageError(f"Failed to append reading: {exc}") from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            lines = self.persistence_path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise StorageError(f"Failed to read readings: {exc}") from exc

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                reading = Reading.model_validate(json.loads(line))
            except (json.JSONDecodeError, SchemaError):
                logger.warning(
                    "Skipping unreadable reading row",
                    extra={"path": str(self.persistence_path), "row_count": line_number},
                )
                continue
            self._items.append(reading)
            if reading.id is not None and reading.id >= self._next_id:
                self._next_id = reading.id + 1


@lru_cache
def build_default_reading_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    store_path = settings.readings_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingStore(persistence_path=persistence)
