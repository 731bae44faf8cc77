"""
Preference storage - Obfuscated key/value layer over unprotected storage.

Every value passes through an Obfuscator before it reaches the backend and
is validated on the way back. Values that fail validation (corrupted,
tampered with, or written by another install) read as the caller's
default instead of raising.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

from structlog import get_logger

from play_licensing.exceptions import PreferenceStorageError, ValidationException
from play_licensing.services.obfuscator import Obfuscator

logger = get_logger(__name__)

# Pending batch entry meaning "remove this key"
_REMOVED = object()


class PreferenceBackend(Protocol):
    """
    Unprotected string key/value medium.

    Writes and removals are staged and become visible to read_string()
    only after commit().
    """

    def read_string(self, key: str) -> str | None:
        """Return the committed value for key, or None when absent."""
        ...

    def write_string(self, key: str, value: str) -> None:
        """Stage a write."""
        ...

    def remove(self, key: str) -> None:
        """Stage a removal."""
        ...

    def clear(self) -> None:
        """Stage removal of every key."""
        ...

    def commit(self) -> None:
        """Flush staged changes."""
        ...


class _StagedBackend:
    """Staging shared by the concrete backends; subclasses persist _data."""

    def __init__(self, data: dict[str, str]) -> None:
        self._data = data
        self._staged: list[tuple[str | None, object]] = []

    def read_string(self, key: str) -> str | None:
        return self._data.get(key)

    def write_string(self, key: str, value: str) -> None:
        self._staged.append((key, value))

    def remove(self, key: str) -> None:
        self._staged.append((key, _REMOVED))

    def clear(self) -> None:
        self._staged.append((None, _REMOVED))

    def _apply_staged(self) -> dict[str, str]:
        updated = dict(self._data)
        for key, value in self._staged:
            if key is None:
                updated.clear()
            elif value is _REMOVED:
                updated.pop(key, None)
            else:
                updated[key] = value  # type: ignore[assignment]
        return updated


class MemoryPreferences(_StagedBackend):
    """
    In-memory backend.

    Pass the same dict to several instances to model fresh readers of one
    storage medium.
    """

    def __init__(self, data: dict[str, str] | None = None) -> None:
        super().__init__(data if data is not None else {})

    def commit(self) -> None:
        if not self._staged:
            return
        updated = self._apply_staged()
        self._data.clear()
        self._data.update(updated)
        self._staged.clear()


class JsonFilePreferences(_StagedBackend):
    """
    Backend storing one JSON object per file.

    commit() writes a temporary sibling file and renames it over the
    target, so readers see either the previous or the new contents.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        super().__init__(self._load())

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("preference_file_unreadable", path=str(self.path), error=str(exc))
            return {}
        if not isinstance(data, dict):
            logger.warning("preference_file_unreadable", path=str(self.path), error="not an object")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def commit(self) -> None:
        """
        Atomically replace the preference file with the staged contents.

        Raises:
            PreferenceStorageError: If the file cannot be written
        """
        if not self._staged:
            return
        updated = self._apply_staged()

        temp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(updated, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError as exc:
            if temp_path and os.path.exists(temp_path):
                os.remove(temp_path)
            logger.error("preference_commit_failed", path=str(self.path), error=str(exc))
            raise PreferenceStorageError(str(self.path), str(exc)) from exc

        self._data = updated
        self._staged.clear()
        logger.debug("preferences_committed", path=str(self.path), keys=len(updated))


class PreferenceObfuscator:
    """
    Batched, obfuscating wrapper around a PreferenceBackend.

    Usage:
        prefs = PreferenceObfuscator(JsonFilePreferences(path), obfuscator)
        prefs.put_string("licensingUrl", url)
        prefs.commit()
        prefs.get_string("licensingUrl", None)
    """

    def __init__(self, backend: PreferenceBackend, obfuscator: Obfuscator) -> None:
        self._backend = backend
        self._obfuscator = obfuscator
        # Key -> obfuscated token, or _REMOVED; None key means "clear all"
        self._pending: dict[str | None, object] = {}

    def put_string(self, key: str, value: str | None) -> None:
        """Stage an obfuscated write; visible to get_string() immediately."""
        self._pending[key] = self._obfuscator.obfuscate(value, key)

    def remove(self, key: str) -> None:
        """Stage removal of key."""
        self._pending[key] = _REMOVED

    def clear(self) -> None:
        """Stage removal of every key, discarding earlier pending writes."""
        self._pending = {None: _REMOVED}

    def get_string(self, key: str, default: str | None) -> str | None:
        """
        Read and validate a value.

        Returns default when the key is absent or its stored value fails
        validation.
        """
        if key in self._pending:
            token = self._pending[key]
            if token is _REMOVED:
                return default
        elif None in self._pending:
            return default
        else:
            token = self._backend.read_string(key)
            if token is None:
                return default

        try:
            return self._obfuscator.unobfuscate(token, key)  # type: ignore[arg-type]
        except ValidationException:
            logger.warning("preference_validation_failed", key=key)
            return default

    def commit(self) -> None:
        """Flush the pending batch to the backend; no-op when nothing is pending."""
        if not self._pending:
            return

        for key, token in self._pending.items():
            if key is None:
                self._backend.clear()
            elif token is _REMOVED:
                self._backend.remove(key)
            else:
                self._backend.write_string(key, token)  # type: ignore[arg-type]
        self._backend.commit()
        self._pending.clear()
