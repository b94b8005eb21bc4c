"""Key-value backings for per-session state.

``InMemoryKeyValueStore`` is a plain dictionary. ``EncryptedCookieSession``
keeps the same interface but loads from, and dumps to, an encrypted cookie
value so session state never leaves the client except as ciphertext.
"""

from __future__ import annotations

import json
import logging
from typing import Dict, Iterator, Optional, Protocol

from unidrive.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


class InMemoryKeyValueStore:
    """Dictionary-backed store; insertion order is the enumeration order."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self.dirty = False

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self._data.get(key) != value:
            self._data[key] = value
            self.dirty = True

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self.dirty = True

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class EncryptedCookieSession(InMemoryKeyValueStore):
    """Session state round-tripped through a single encrypted cookie."""

    def __init__(self, cipher: TokenCipherService, initial: Optional[Dict[str, str]] = None) -> None:
        super().__init__(initial)
        self._cipher = cipher

    @classmethod
    def load(cls, cipher: TokenCipherService, cookie_value: Optional[str]) -> "EncryptedCookieSession":
        """Decrypt a cookie value; unreadable cookies start an empty session."""
        if not cookie_value:
            return cls(cipher)
        try:
            payload = json.loads(cipher.decrypt(cookie_value))
        except ValueError:
            logger.warning("Discarding unreadable session cookie")
            return cls(cipher)
        if not isinstance(payload, dict):
            logger.warning("Discarding session cookie with unexpected shape")
            return cls(cipher)
        return cls(
            cipher,
            {str(key): value for key, value in payload.items() if isinstance(value, str)},
        )

    def dump(self) -> str:
        return self._cipher.encrypt(json.dumps(self.snapshot(), separators=(",", ":")))


__all__ = ["EncryptedCookieSession", "InMemoryKeyValueStore", "KeyValueStore"]
