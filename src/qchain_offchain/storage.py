"""
Session Persistence

Origin-scoped key/value capability used to remember the last connected
address per chain family. Injected into the session manager so restoration
logic runs the same against memory, a JSON file, or a browser bridge.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol


logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store, used by tests and short-lived sessions"""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Store backed by a single JSON object on disk"""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def _read_all(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session store {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring session store {self._path}: expected a JSON object")
            return {}
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # Readers only ever see a complete file
        staged = self._path.with_name(self._path.name + ".tmp")
        staged.write_text(json.dumps(data, indent=2))
        staged.replace(self._path)
