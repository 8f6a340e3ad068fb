"""Namespaced key-value persistence.

All persisted state lives in one JSON document whose top level is split into
sections (``pets``, ``stats``). Values are addressed with dotted paths such as
``"pets.teams"``. Every write replaces the file atomically.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import uuid
from contextlib import suppress
from pathlib import Path
from typing import Any

from petsync.exceptions import PetSyncStorageError

_logger = logging.getLogger(__name__)

STORAGE_VERSION = 1


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".tmp-{path.name}-{uuid.uuid4().hex}")
    try:
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError:
        with suppress(FileNotFoundError):
            tmp_path.unlink()
        raise


class KeyValueStore:
    """JSON-document store with dotted-path access.

    Pass ``path=None`` for a purely in-memory store.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self._doc: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        default: dict[str, Any] = {"version": STORAGE_VERSION}
        if self.path is None or not self.path.exists():
            return default
        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.warning("Persisted state at %s is unreadable; starting from defaults", self.path)
            return default
        if not isinstance(loaded, dict):
            _logger.warning("Persisted state at %s is not an object; starting from defaults", self.path)
            return default
        return loaded

    def read(self, path: str, default: Any = None) -> Any:
        """Return a deep copy of the value at *path*, or *default*."""
        node: Any = self._doc
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    def write(self, path: str, value: Any) -> None:
        """Set the value at *path* and persist the whole document."""
        parts = path.split(".")
        node = self._doc
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)
        self._flush()

    def delete(self, path: str) -> None:
        parts = path.split(".")
        node: Any = self._doc
        for part in parts[:-1]:
            node = node.get(part) if isinstance(node, dict) else None
            if node is None:
                return
        if isinstance(node, dict) and parts[-1] in node:
            del node[parts[-1]]
            self._flush()

    def _flush(self) -> None:
        if self.path is None:
            return
        payload = json.dumps(self._doc, ensure_ascii=True, indent=2, sort_keys=True) + "\n"
        try:
            _atomic_write_text(self.path, payload)
        except OSError as exc:
            raise PetSyncStorageError(f"Failed to persist state to {self.path}: {exc}") from exc
