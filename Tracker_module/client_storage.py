"""
Client-side key/value stores.

The tracker uses two: a persistent store that survives reloads (session token,
credential and session timing) and a reload-scoped store that holds a short-lived backup
written when the page is hidden, used at the next boot to tell a refresh from
a closed tab.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

SESSION_TOKEN_KEY = "sessionToken"
CREDENTIAL_KEY = "token"
BACKUP_SESSION_TOKEN_KEY = "backup_sessionToken"
BACKUP_CREDENTIAL_KEY = "backup_token"
SESSION_STARTED_AT_KEY = "sessionStartedAt"
LAST_ACTIVITY_AT_KEY = "lastActivityAt"


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._persist()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._persist()

    def clear(self) -> None:
        self._data.clear()
        self._persist()

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def _persist(self) -> None:
        pass


class JsonFileStore(MemoryStore):
    """MemoryStore mirrored to a JSON file. A missing or corrupt file starts empty."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable client store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _persist(self) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self._data), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write client store {self.path}: {e}")
