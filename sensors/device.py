from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

from errors import StorageError

logger = logging.getLogger(__name__)


def load_device_id(path: Optional[Path], override: Optional[str] = None) -> str:
    """Return the stable per-install device identifier.

    An explicit ``override`` wins. Otherwise the id stored at ``path`` is used,
    and a new one is generated and written there on first run.
    """
    if override:
        return override
    if path is None:
        return uuid4().hex

    if path.exists():
        try:
            existing = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise StorageError(f"Failed to read device id: {exc}") from exc
        if existing:
            return existing

    device_id = uuid4().hex
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(device_id + "\n", encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Failed to persist device id: {exc}") from exc
    logger.info("Generated device id", extra={"device_id": device_id, "path": str(path)})
    return device_id
