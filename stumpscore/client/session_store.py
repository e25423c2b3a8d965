"""Client-side session persistence.

A session is two string keys in a local key-value store: the auth token and
the cached user JSON. They are always written together and cleared together.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "stumpscore_auth_token"
USER_KEY = "stumpscore_user"

# Never cached client-side.
_SECRET_USER_FIELDS = ("password", "password_hash", "passwordHash")


class MemoryStorage:
    """In-process key-value storage."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_many(self, items: Dict[str, str]) -> None:
        self._data.update(items)

    def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)


class JsonFileStorage:
    """Key-value storage persisted as one JSON file.

    Each write replaces the whole file atomically, so a reader never sees
    the token without the user or vice versa.
    """

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {type(e).__name__}: {str(e)}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_many(self, items: Dict[str, str]) -> None:
        data = self._read()
        data.update(items)
        self._write(data)

    def remove_many(self, keys: Iterable[str]) -> None:
        data = self._read()
        for key in keys:
            data.pop(key, None)
        self._write(data)


def strip_secrets(user: Dict) -> Dict:
    return {k: v for k, v in user.items() if k not in _SECRET_USER_FIELDS}


class SessionStore:
    """Sole source of truth for who is signed in on this device."""

    def __init__(self, storage=None):
        self.storage = storage if storage is not None else MemoryStorage()
        self._lock = threading.Lock()

    @property
    def token(self) -> Optional[str]:
        return self.storage.get(AUTH_TOKEN_KEY)

    @property
    def user(self) -> Optional[Dict]:
        """Cached user, or None when absent or unreadable."""
        raw = self.storage.get(USER_KEY)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            logger.warning("Error parsing cached user; treating session as signed out")
            return None
        if not isinstance(user, dict):
            return None
        return strip_secrets(user)

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def save(self, token: str, user: Dict) -> None:
        """Write token and cached user in a single storage write."""
        if not token:
            raise ValueError("Session token is required")
        with self._lock:
            self.storage.set_many({
                AUTH_TOKEN_KEY: token,
                USER_KEY: json.dumps(strip_secrets(user)),
            })

    def update_user(self, user: Dict, expected_token: Optional[str] = None) -> bool:
        """Refresh the cached user of the current session.

        Skipped (returns False) when signed out, or when the session changed
        since the caller read ``expected_token``, so a late refresh cannot
        resurrect a session that was logged out meanwhile.
        """
        with self._lock:
            token = self.token
            if token is None or (expected_token is not None and token != expected_token):
                logger.info("Session changed before user refresh; dropping stale update")
                return False
            self.storage.set_many({
                AUTH_TOKEN_KEY: token,
                USER_KEY: json.dumps(strip_secrets(user)),
            })
            return True

    def clear(self) -> None:
        with self._lock:
            self.storage.remove_many([AUTH_TOKEN_KEY, USER_KEY])
