"""Anti-forgery token stores used by ``@csrf``."""
from __future__ import annotations

import secrets
import threading
from typing import Callable, Dict, MutableMapping, Protocol, runtime_checkable

CSRF_TOKEN_KEY = "_csrf_token"


def generate_token() -> str:
    """256 random bits as 64 lowercase hex characters."""
    return secrets.token_hex(32)


@runtime_checkable
class TokenStore(Protocol):
    """Key/value store that keeps a token for the lifetime of a session."""

    def get_or_create(self, key: str, factory: Callable[[], str]) -> str:
        ...


class InMemoryTokenStore:
    """Process-local store; one token per key for the life of the object."""

    def __init__(self) -> None:
        self._tokens: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_or_create(self, key: str, factory: Callable[[], str]) -> str:
        with self._lock:
            token = self._tokens.get(key)
            if token is None:
                token = factory()
                self._tokens[key] = token
            return token

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()


class SessionTokenStore:
    """Store backed by a per-request session mapping (e.g. a web framework session)."""

    def __init__(self, session: MutableMapping[str, str]) -> None:
        self.session = session

    def get_or_create(self, key: str, factory: Callable[[], str]) -> str:
        token = self.session.get(key)
        if not token:
            token = factory()
            self.session[key] = token
        return token


__all__ = [
    "CSRF_TOKEN_KEY",
    "TokenStore",
    "InMemoryTokenStore",
    "SessionTokenStore",
    "generate_token",
]
