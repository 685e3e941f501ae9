from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

STORE_VERSION = 1


class KeyValueStore(Protocol):
    def get(self, key: str, fallback: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Process-lifetime store; values are deep-copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, fallback: Any = None) -> Any:
        if key not in self._data:
            return fallback
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Single JSON document on disk holding every key."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}
        if not isinstance(payload, dict):
            return {}
        values = payload.get("values")
        return values if isinstance(values, dict) else {}

    def _write(self, values: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"version": STORE_VERSION, "values": values}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=True), encoding="utf-8")
        tmp_path.replace(self.path)

    def get(self, key: str, fallback: Any = None) -> Any:
        return self._read().get(key, fallback)

    def set(self, key: str, value: Any) -> None:
        values = self._read()
        values[key] = value
        self._write(values)

    def remove(self, key: str) -> None:
        values = self._read()
        if values.pop(key, None) is not None:
            self._write(values)
