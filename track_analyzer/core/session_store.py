"""
Durable key/value storage for the login session.

The authenticator never touches files or globals directly; it receives a
SessionStore and uses three operations: get, set and clear. Two entries
are kept, under fixed names:

    track_analyzer.access_token   - serialized Credential (JSON string)
    track_analyzer.code_verifier  - pending PKCE verifier, single-use

FileSessionStore writes through on every call so that a value is on disk
before anyone is told about it. The file is replaced atomically and kept
readable by the owner only, like the token file of the original OAuth
flow.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from track_analyzer.core.exceptions import SessionStoreError
from track_analyzer.core.logger import get_logger

logger = get_logger(__name__)


ACCESS_TOKEN_KEY = "track_analyzer.access_token"
CODE_VERIFIER_KEY = "track_analyzer.code_verifier"


class SessionStore(ABC):
    """Minimal string key/value store injected into the authenticator."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value durably. Returns only once the write is complete."""

    @abstractmethod
    def clear(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""


class MemorySessionStore(SessionStore):
    """In-process store; state is lost when the process exits."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def clear(self, key: str) -> None:
        self._values.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._values)


class FileSessionStore(SessionStore):
    """
    JSON-file store with write-through semantics.

    Attributes:
        path: Location of the session file (created on first write).

    Behavior:
        - get() reads the file every time, so two processes sharing the
          file observe each other's writes.
        - set()/clear() rewrite the whole file through a temporary file and
          os.replace(), then chmod 600.
        - A corrupted file is treated as empty (logged as a warning); the
          next write replaces it.

    Raises:
        SessionStoreError: If the file cannot be read or written.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._write(data)

    def clear(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        del data[key]
        self._write(data)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning(f"Session file is corrupted, ignoring it: {self.path}")
            return {}
        except OSError as e:
            raise SessionStoreError(
                f"Failed to read session file: {e}",
                details={"file_path": str(self.path), "original_error": str(e)}
            ) from e

        if not isinstance(data, dict):
            logger.warning(f"Session file has unexpected structure, ignoring it: {self.path}")
            return {}
        return data

    def _write(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".session-", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise SessionStoreError(
                f"Failed to write session file: {e}",
                details={"file_path": str(self.path), "original_error": str(e)}
            ) from e

        try:
            # 0o600 = owner read/write only
            self.path.chmod(0o600)
        except OSError:
            # Not supported on every platform (e.g. some Windows filesystems)
            logger.debug(f"Could not restrict permissions on {self.path}")
