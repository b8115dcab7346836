"""
Valkey (Redis-compatible) client for session storage and notifications.

Thin wrapper around redis-py storing JSON documents with TTLs.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible JSON key/value store.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set_json("session:abc", {"user_id": "..."}, expire_seconds=300)
        data = client.get_json("session:abc")  # None if missing
    """

    def __init__(self, url: str, client: redis.Redis | None = None):
        self._client = client or redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        payload = json.dumps(value)
        if expire_seconds is not None:
            self._client.setex(key, expire_seconds, payload)
        else:
            self._client.set(key, payload)

    def get_json(self, key: str) -> dict | list | None:
        """
        Get and deserialize a JSON value.

        Returns None if key doesn't exist.
        Raises ValueError if value is not valid JSON.
        """
        value = self._client.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def publish_json(self, channel: str, message: dict) -> int:
        """Publish a JSON message. Returns the number of subscribers that received it."""
        return self._client.publish(channel, json.dumps(message))

    def delete(self, key: str) -> bool:
        """True if the key existed and was deleted."""
        return self._client.delete(key) > 0

    def close(self) -> None:
        self._client.close()
        logger.info("ValkeyClient closed")
