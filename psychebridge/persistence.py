"""
Full-state persistence for progress records and simulation sessions.

Mirrors the engine's in-memory collections to a local key-value store
after every state change, and restores them once at process start.

Layout (JSONFileStore):
    state/
        psychebridge_progress.json
        psychebridge_sessions.json

Blob format:
    {"schema_version": 1, "data": [...]}

Design:
- Full snapshot on every save (never a delta)
- Atomic file replace (no torn writes on crash)
- Version tag checked on load; mismatch fails loudly
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from psychebridge.contracts import SimulationSession, StudentProgress
from psychebridge.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
PROGRESS_KEY = "psychebridge_progress"
SESSIONS_KEY = "psychebridge_sessions"


class KeyValueStore:
    """Minimal string-keyed store of JSON-serializable values"""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """
    In-process store. Values are held as JSON text so that reads
    never alias what was written.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)


class JSONFileStore(KeyValueStore):
    """One JSON file per key under base_dir"""

    def __init__(self, base_dir: str = "outputs/state"):
        """
        Args:
            base_dir: Directory holding the key files (created if missing)
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"JSONFileStore initialized: {self.base_dir}")

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        """
        Returns:
            Parsed JSON value, or None if the key was never written

        Raises:
            PersistenceError: If the file exists but is not valid JSON
        """
        path = self._path(key)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Corrupt state file {path}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        """Write value atomically (temp file in same dir, then os.replace)"""
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}-", suffix=".tmp", dir=self.base_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(value, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


@dataclass
class PersistedState:
    """
    Restored state.

    Attributes:
        progress: Progress records (one per student)
        sessions: Sessions, most recent first
    """
    progress: List[StudentProgress]
    sessions: List[SimulationSession]


class StatePersistence:
    """
    Loads and saves the engine's progress and session collections.

    Both blobs are written on every save. Load returns None when
    nothing has been stored yet.
    """

    def __init__(self, store: KeyValueStore):
        """
        Args:
            store: Backing key-value store
        """
        self.store = store

    def _wrap(self, data: list) -> dict:
        return {'schema_version': SCHEMA_VERSION, 'data': data}

    def _unwrap(self, key: str, blob: Any) -> list:
        """
        Raises:
            PersistenceError: On unknown schema version or bad shape
        """
        if not isinstance(blob, dict) or 'schema_version' not in blob:
            raise PersistenceError(f"Stored '{key}' has no schema_version tag")

        version = blob['schema_version']
        if version != SCHEMA_VERSION:
            raise PersistenceError(
                f"Stored '{key}' has schema_version {version}, expected {SCHEMA_VERSION}"
            )

        data = blob.get('data')
        if not isinstance(data, list):
            raise PersistenceError(f"Stored '{key}' data must be a list")
        return data

    def save(self, progress: List[StudentProgress], sessions: List[SimulationSession]) -> None:
        """
        Serialize full state.

        Args:
            progress: All progress records
            sessions: All sessions, in listing order (most recent first)
        """
        self.store.set(PROGRESS_KEY, self._wrap([p.to_json() for p in progress]))
        self.store.set(SESSIONS_KEY, self._wrap([s.to_json() for s in sessions]))
        logger.debug(f"Saved state: {len(progress)} progress records, {len(sessions)} sessions")

    def load(self) -> Optional[PersistedState]:
        """
        Restore state.

        Returns:
            PersistedState, or None if neither blob exists

        Raises:
            PersistenceError: If a blob is corrupt, untagged or from another
                schema version
        """
        progress_blob = self.store.get(PROGRESS_KEY)
        sessions_blob = self.store.get(SESSIONS_KEY)

        if progress_blob is None and sessions_blob is None:
            logger.info("No stored state found, starting empty")
            return None

        progress_data = self._unwrap(PROGRESS_KEY, progress_blob) if progress_blob is not None else []
        sessions_data = self._unwrap(SESSIONS_KEY, sessions_blob) if sessions_blob is not None else []

        try:
            progress = [StudentProgress.from_json(item) for item in progress_data]
            sessions = [SimulationSession.from_json(item) for item in sessions_data]
        except ValidationError as e:
            raise PersistenceError(f"Stored state failed validation: {e}") from e

        logger.info(f"Loaded state: {len(progress)} progress records, {len(sessions)} sessions")
        return PersistedState(progress=progress, sessions=sessions)
