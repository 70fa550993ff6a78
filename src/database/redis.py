"""
Lightweight in-memory RedisCache replacement for local development.

Implements the interface of src.database.redis_real so the API can run
without a Redis instance. Expired entries are dropped on read and swept
on every write.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple


class RedisCache:
    def __init__(self) -> None:
        # key -> (expires_at_monotonic, data)
        self._store: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def _get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, data = entry
        if time.monotonic() >= expires_at:
            self._store.pop(key, None)
            return None
        return dict(data)

    # --- Print tokens (one-time links for the agreement print view) ---------

    def _print_key(self, token: str) -> str:
        return f"print_token:{token}"

    def _sweep(self) -> None:
        now = time.monotonic()
        for key in [k for k, (expires_at, _) in self._store.items() if now >= expires_at]:
            del self._store[key]

    def set_print_token(self, token: str, data: Dict[str, Any], ttl: int = 300) -> None:
        self._sweep()
        self._store[self._print_key(token)] = (time.monotonic() + ttl, dict(data))

    def get_print_token(self, token: str) -> Optional[Dict[str, Any]]:
        return self._get(self._print_key(token))

    def consume_print_token(self, token: str) -> Optional[Dict[str, Any]]:
        data = self._get(self._print_key(token))
        self._store.pop(self._print_key(token), None)
        return data

    # --- Misc -----------------------------------------------------------------

    def ping(self) -> bool:
        return True
