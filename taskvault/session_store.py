"""Session-scoped key/value storage for client-side login state.

Anything the PKCE flow needs across the authorize redirect lives here rather
than in memory, because the redirect may restart the process that started it.
"""

import json
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def get(self, key: str) -> dict | None: ...

    def set(self, key: str, value: dict) -> None: ...

    def clear(self, key: str | None = None) -> None: ...


class MemorySessionStore:
    """Lives as long as the process. Useful for tests and single-run scripts."""

    def __init__(self):
        self._data: dict[str, dict] = {}

    def get(self, key: str) -> dict | None:
        return self._data.get(key)

    def set(self, key: str, value: dict) -> None:
        self._data[key] = value

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)


class FileSessionStore:
    """Reads/writes session entries to a local JSON file so they survive a restart.

    Logout deletes the file, which ends the session.
    """

    def __init__(self, path: Path):
        self.path = path

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> dict | None:
        return self._read_all().get(key)

    def set(self, key: str, value: dict) -> None:
        data = self._read_all()
        data[key] = value
        self.path.write_text(json.dumps(data, indent=2))

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self.path.unlink(missing_ok=True)
            return
        data = self._read_all()
        if data.pop(key, None) is not None:
            self.path.write_text(json.dumps(data, indent=2))
