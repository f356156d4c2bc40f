"""Identity and connectivity collaborators consumed by the sync coordinator."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import httpx
import yaml

from ..config import Config

logger = logging.getLogger(__name__)


class Identity(Protocol):
    """Who the current user is, if anyone."""

    @property
    def user_id(self) -> str | None: ...

    @property
    def signed_in(self) -> bool: ...


class StaticIdentity:
    """In-memory identity, switched explicitly."""

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def signed_in(self) -> bool:
        return self._user_id is not None

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id cannot be empty")
        self._user_id = user_id

    def sign_out(self) -> None:
        self._user_id = None


class SessionIdentity(StaticIdentity):
    """Identity persisted in a YAML session file between CLI runs."""

    def __init__(self, config: Config) -> None:
        self.session_file: Path = config.session_file
        super().__init__(self._load())

    def _load(self) -> str | None:
        if not self.session_file.exists():
            return None
        with open(self.session_file) as f:
            data = yaml.safe_load(f) or {}
        return data.get("user_id") or None

    def _save(self) -> None:
        with open(self.session_file, "w") as f:
            yaml.dump({"user_id": self._user_id}, f, default_flow_style=False, sort_keys=False)

    def sign_in(self, user_id: str) -> None:
        super().sign_in(user_id)
        self._save()

    def sign_out(self) -> None:
        super().sign_out()
        self._save()


class Connectivity:
    """Observable reachable/unreachable flag.

    Subscribers are called synchronously, and only when the value changes.
    """

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: list[Callable[[bool], None]] = []

    @property
    def online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            listener(online)

    def subscribe(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


def probe_url(url: str, timeout: float = 3.0) -> bool:
    """Return True if ``url`` answers an HTTP HEAD request at all."""
    try:
        httpx.head(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.debug("Reachability probe of %s failed: %s", url, e)
        return False
    return True
