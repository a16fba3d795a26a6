"""
Token Store

Small persisted key/value store for client-side values such as the
auth token. Backed by a JSON file; a missing or unreadable file reads as
an empty store.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


class TokenStore:
    """String key/value storage persisted to a JSON file."""

    def __init__(self, persist_path: Path | str) -> None:
        """
        Initialize the store.

        Args:
            persist_path: JSON file holding the stored values
        """
        self._persist_path = Path(persist_path).expanduser()

    @property
    def path(self) -> Path:
        return self._persist_path

    def _load(self) -> dict[str, str]:
        """Read all values from the persistence file."""
        if not self._persist_path.exists():
            return {}

        try:
            with open(self._persist_path, "r") as f:
                data = json.load(f)
        except Exception as e:
            logger.error("Failed to read token store", path=str(self._persist_path), error=str(e))
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed token store", path=str(self._persist_path))
            return {}

        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> bool:
        """Write all values to the persistence file."""
        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._persist_path, "w") as f:
                json.dump(data, f, indent=2)
        except Exception as e:
            logger.error("Failed to write token store", path=str(self._persist_path), error=str(e))
            return False
        return True

    def get(self, key: str) -> str | None:
        """Get a stored value, or None if absent."""
        return self._load().get(key)

    def set(self, key: str, value: str) -> bool:
        """Store a value. Returns False if it could not be persisted."""
        data = self._load()
        data[key] = value
        return self._save(data)

    def remove(self, key: str) -> bool:
        """Remove a value. Returns True if it was present."""
        data = self._load()
        if key not in data:
            return False
        del data[key]
        return self._save(data)

    def clear(self) -> None:
        """Remove every stored value."""
        if self._persist_path.exists():
            self._save({})
