"""
JSON document store over Valkey for sessions, accounts and OAuth links.

Every value is stored as a JSON string. Connection problems surface as
redis.RedisError; callers in storage/ translate them.
"""

import json
import logging
from typing import Any, Iterable

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Thin redis-py wrapper that speaks JSON.

    Usage:
        store = ValkeyClient("redis://localhost:6379/0")
        store.set_json("session:abc", {"user": 1}, expire_seconds=3600)
        store.get_json("session:abc")  # None once expired
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None, timeout_seconds: float = 5.0):
        """
        Args:
            url: redis:// or rediss:// URL, used when no client is injected
            client: Existing redis client (must decode responses to str)
            timeout_seconds: Applied to both connect and socket reads

        Raises:
            ValueError: Neither url nor client supplied
            redis.ConnectionError: Server unreachable at startup
        """
        if client is None and not url:
            raise ValueError("url is required when no client is supplied")
        self._client = client or redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        self.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        self._client.ping()
        return True

    def get_json(self, key: str) -> Any:
        """Decoded value at key, or None when absent. ValueError on corrupt data."""
        raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def set_json(self, key: str, value: Any, expire_seconds: int | None = None) -> None:
        """Store value, replacing any TTL with expire_seconds (None keeps it forever)."""
        self._client.set(key, json.dumps(value), ex=expire_seconds)

    def delete(self, key: str) -> bool:
        """True when the key was present."""
        return self._client.delete(key) > 0

    def write_json_atomic(self, values: dict[str, Any], delete: Iterable[str] = ()) -> None:
        """
        Apply a batch of sets and deletes inside one MULTI/EXEC.

        Other clients never observe a partial batch.
        """
        with self._client.pipeline(transaction=True) as pipe:
            for key, value in values.items():
                pipe.set(key, json.dumps(value))
            for key in delete:
                pipe.delete(key)
            pipe.execute()

    def close(self) -> None:
        self._client.close()
        logger.info("ValkeyClient closed")
