"""Client-visible tokens for opaque resource handles."""

from __future__ import annotations

import logging
import secrets
import threading
from typing import Any

from wasm2openapi.errors import UnknownResourceHandle
from wasm2openapi.models import Resource

logger = logging.getLogger(__name__)


class ResourceHandleTable:
    """Token registry owned by one invocation context.

    Tokens are random and never reused, so a token minted by a context that
    has since been closed (or by another context) can never resolve here.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, Any]] = {}
        # id(handle) -> token; entries keep the handle alive so ids stay unique
        self._tokens: dict[int, str] = {}
        self._lock = threading.Lock()
        self._closed = False

    def mint(self, handle: Any, resource: Resource) -> str:
        """Return the token for ``handle``, minting one the first time it is seen."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Resource handle table is closed")
            token = self._tokens.get(id(handle))
            if token is not None:
                return token
            token = f"{resource.name}-{secrets.token_urlsafe(12)}"
            self._entries[token] = (resource.identity, handle)
            self._tokens[id(handle)] = token
            return token

    def lookup(self, token: str, resource: Resource, path: tuple[str | int, ...] = ()) -> Any:
        with self._lock:
            entry = self._entries.get(token)
        if entry is None:
            raise UnknownResourceHandle(token, path)
        identity, handle = entry
        if identity != resource.identity:
            # a live token of another resource type is just as unknown here
            raise UnknownResourceHandle(token, path)
        return handle

    def forget(self, token: str) -> None:
        """Drop ``token`` once its handle has been moved into the component."""
        with self._lock:
            entry = self._entries.pop(token, None)
            if entry is not None:
                self._tokens.pop(id(entry[1]), None)

    def close(self) -> list[Any]:
        """Invalidate every token; returns the handles that were still registered."""
        with self._lock:
            handles = [handle for _, handle in self._entries.values()]
            self._entries.clear()
            self._tokens.clear()
            self._closed = True
        if handles:
            logger.debug("Released %d resource handle(s)", len(handles))
        return handles

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token: object) -> bool:
        return token in self._entries
