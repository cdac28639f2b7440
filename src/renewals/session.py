"""Persisted client-side session: the auth token and a cached user profile.

The file is read once when the store is created.  Nothing else in the
package interprets the profile; it is kept so a front end can decide its
initial view without a round trip.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class SessionStore:
    """Token and user profile, optionally backed by a JSON file."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self.token: str | None = None
        self.user: dict[str, Any] | None = None
        self._load()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed session file %s", self._path)
            return
        token = data.get("token")
        user = data.get("user")
        self.token = token if isinstance(token, str) and token else None
        self.user = user if isinstance(user, dict) else None

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({"token": self.token, "user": self.user}))

    def set(self, token: str, user: dict[str, Any] | None = None) -> None:
        self.token = token
        if user is not None:
            self.user = user
        self.save()

    def clear_token(self) -> None:
        """Forget the token but keep the cached profile."""
        self.token = None
        self.save()

    def clear(self) -> None:
        self.token = None
        self.user = None
        self.save()
