# app/cache.py
"""
Кеш користувачів у Redis.

Якщо REDIS_URL не задано або Redis недоступний, кеш просто вимикається.
"""
import json
import logging
from datetime import timedelta
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from . import config

logger = logging.getLogger(__name__)

USER_CACHE_TTL = timedelta(minutes=5)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Повертає клієнт Redis або None, якщо кеш вимкнено.

    Returns:
        redis.Redis або None.
    """
    global _redis_client
    if _redis_client is not None or not config.REDIS_URL:
        return _redis_client
    try:
        client = redis.Redis.from_url(config.REDIS_URL, socket_connect_timeout=2, socket_timeout=2)
        client.ping()
    except RedisError as e:
        logger.warning(f"Redis unavailable: {e}. User cache disabled.")
        return None
    _redis_client = client
    return _redis_client


def user_cache_key(user_id: str) -> str:
    return f"user:{user_id}"


def get_cached_user(user_id: str) -> Optional[dict]:
    client = get_redis_client()
    if client is None:
        return None
    try:
        cached = client.get(user_cache_key(user_id))
    except RedisError as e:
        logger.warning(f"Cache get error for user {user_id}: {e}")
        return None
    return json.loads(cached) if cached else None


def cache_user(user: dict) -> None:
    client = get_redis_client()
    if client is None:
        return
    try:
        # Зберігаємо в кеш на 5 хвилин
        client.setex(user_cache_key(user["id"]), USER_CACHE_TTL, json.dumps(user))
    except RedisError as e:
        logger.warning(f"Cache set error for user {user['id']}: {e}")


def forget_user(user_id: Any) -> None:
    client = get_redis_client()
    if client is None:
        return
    try:
        client.delete(user_cache_key(user_id))
    except RedisError as e:
        logger.warning(f"Cache delete error for user {user_id}: {e}")
