"""
Real Redis-backed cache for production when REDIS_URL is set.
Implements the same interface as src.database.redis (in-memory stub).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import redis

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Redis-backed cache for short-lived tokens.
    """

    def __init__(self, url: str, default_ttl: int = 300) -> None:
        self._client = redis.from_url(url, decode_responses=True)
        self._default_ttl = default_ttl

    @staticmethod
    def _loads(raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    # --- Print tokens -----------------------------------------------------------

    def _print_key(self, token: str) -> str:
        return f"print_token:{token}"

    def set_print_token(self, token: str, data: Dict[str, Any], ttl: int = 300) -> None:
        payload = json.dumps(data, default=str)
        self._client.setex(self._print_key(token), ttl or self._default_ttl, payload)

    def get_print_token(self, token: str) -> Optional[Dict[str, Any]]:
        return self._loads(self._client.get(self._print_key(token)))

    def consume_print_token(self, token: str) -> Optional[Dict[str, Any]]:
        pipe = self._client.pipeline()
        pipe.get(self._print_key(token))
        pipe.delete(self._print_key(token))
        raw, _ = pipe.execute()
        return self._loads(raw)

    # --- Misc -----------------------------------------------------------------

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except Exception as e:
            logger.warning("Redis ping failed: %s", e)
            return False
