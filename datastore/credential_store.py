from __future__ import annotations

import json
import logging
import os
import secrets
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Optional
from uuid import uuid4

from pydantic import ValidationError as SchemaError

from app.schemas import Credential
from errors import StorageError
from settings import get_settings

logger = logging.getLogger(__name__)

# The credential row always lives under this key; there is never more than one.
_CREDENTIAL_KEY = "1"


class CredentialStore:
    """Holds the single API bearer token, creating it on first use."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._credential: Optional[Credential] = None
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def get_or_create_token(self) -> str:
        with self._lock:
            if self._credential is None:
                # another process may have created it since we loaded
                self._load_from_disk()
            if self._credential is None:
                credential = Credential(token=str(uuid4()))
                self._persist(credential)
                self._credential = credential
                logger.info("Generated API credential", extra={"path": str(self.persistence_path)})
            return self._credential.token

    def find_by_token(self, candidate: str) -> Optional[Credential]:
        with self._lock:
            credential = self._credential
            if credential is None:
                self._load_from_disk()
                credential = self._credential
        if credential is None or not candidate:
            return None
        if secrets.compare_digest(credential.token.encode("utf-8"), candidate.encode("utf-8")):
            return credential.model_copy()
        return None

    def _persist(self, credential: Credential) -> None:
        if not self.persistence_path:
            return
        payload = {_CREDENTIAL_KEY: credential.model_dump(mode="json")}
        staging = self.persistence_path.with_name(self.persistence_path.name + ".tmp")
        try:
            staging.write_text(json.dumps(payload, indent=2, sort_keys=True))
            os.replace(staging, self.persistence_path)
        except OSError as exc:
            staging.unlink(missing_ok=True)
            raise StorageError(f"Failed to persist credential: {exc}") from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        payload = data.get(_CREDENTIAL_KEY) if isinstance(data, dict) else None
        if payload is None:
            return
        try:
            self._credential = Credential.model_validate(payload)
        except SchemaError:
            logger.warning("Ignoring malformed credential file", extra={"path": str(self.persistence_path)})


@lru_cache
def build_default_credential_store(path: Optional[str] = None) -> CredentialStore:
    settings = get_settings()
    store_path = settings.credentials_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return CredentialStore(persistence_path=persistence)
