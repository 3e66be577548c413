#!/usr/bin/env python3
"""
Session state storage for the sales chatbot.

Small JSON documents (pending purchase intents, remembered candidates) are kept
per key in Redis when it is enabled and reachable, otherwise in process memory.
"""

import json
import time
from typing import Any, Dict, Optional

import redis

from .config import Config
from ..utils.logger import get_logger

logger = get_logger("session")


class SessionManager:
    """Key/value store for per-chat conversation state."""

    def __init__(self, use_redis: Optional[bool] = None, redis_url: Optional[str] = None):
        """Connect to Redis or fall back to in-memory storage."""
        self.use_redis = Config.USE_REDIS if use_redis is None else use_redis
        # key -> (expires_at or None, json text)
        self.memory_store: Dict[str, tuple] = {}
        self.redis_client = None

        if self.use_redis:
            try:
                self.redis_client = redis.Redis.from_url(redis_url or Config.REDIS_URL, decode_responses=True)
                # Test Redis connection
                self.redis_client.ping()
                logger.info("[SESSION] Using Redis for session storage")
            except redis.RedisError as e:
                logger.warning("[SESSION] Redis not available (%s), using in-memory session storage", e)
                self.use_redis = False
                self.redis_client = None

    def _key(self, namespace: str, chat_id: int) -> str:
        return f"salesbot:{namespace}:{chat_id}"

    def get(self, namespace: str, chat_id: int) -> Optional[Dict[str, Any]]:
        key = self._key(namespace, chat_id)
        if self.use_redis:
            raw = self.redis_client.get(key)
            return json.loads(raw) if raw else None

        entry = self.memory_store.get(key)
        if not entry:
            return None
        expires_at, raw = entry
        if expires_at is not None and expires_at <= time.time():
            del self.memory_store[key]
            return None
        return json.loads(raw)

    def set(self, namespace: str, chat_id: int, value: Dict[str, Any], ttl_seconds: Optional[int] = None) -> None:
        key = self._key(namespace, chat_id)
        raw = json.dumps(value)
        if self.use_redis:
            if ttl_seconds:
                self.redis_client.set(key, raw, ex=int(ttl_seconds))
            else:
                self.redis_client.set(key, raw)
            return
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        self.memory_store[key] = (expires_at, raw)

    def delete(self, namespace: str, chat_id: int) -> None:
        key = self._key(namespace, chat_id)
        if self.use_redis:
            self.redis_client.delete(key)
        else:
            self.memory_store.pop(key, None)

    def clear_chat(self, chat_id: int, namespaces=("pending", "candidates")) -> None:
        """Drop every piece of state kept for a chat."""
        for namespace in namespaces:
            self.delete(namespace, chat_id)
