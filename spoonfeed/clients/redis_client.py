"""
Redis client wrapper.

Responsibilities:
  • Refresh sessions — STRING keyed by session:{refresh_token}
                       value = user_id, expires after settings.session_ttl

Access tokens are stateless JWTs; only refresh tokens live here, so signing
out (or rotating on refresh) is a single DEL.
"""
import logging
import secrets
from typing import Optional

import redis.asyncio as aioredis

from spoonfeed.config import settings

logger = logging.getLogger(__name__)

SESSION_KEY = "session:{token}"


class SessionStore:
    def __init__(self, redis: aioredis.Redis, ttl: int) -> None:
        self._redis = redis
        self.ttl = ttl

    async def create(self, user_id: str) -> str:
        """Issue a new refresh token for `user_id`."""
        token = secrets.token_urlsafe(32)
        await self._redis.set(SESSION_KEY.format(token=token), user_id, ex=self.ttl)
        return token

    async def get_user_id(self, token: str) -> Optional[str]:
        return await self._redis.get(SESSION_KEY.format(token=token))

    async def revoke(self, token: str) -> None:
        await self._redis.delete(SESSION_KEY.format(token=token))

    async def rotate(self, token: str) -> Optional[tuple[str, str]]:
        """
        Exchange a refresh token for a fresh one.
        Returns (user_id, new_token), or None if the token is unknown/expired.
        """
        key = SESSION_KEY.format(token=token)
        user_id = await self._redis.getdel(key)
        if user_id is None:
            return None
        return user_id, await self.create(user_id)

    async def close(self) -> None:
        await self._redis.aclose()


_sessions: Optional[SessionStore] = None


async def init_redis() -> None:
    global _sessions
    client = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )
    await client.ping()
    _sessions = SessionStore(client, settings.session_ttl)
    logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)


async def close_redis() -> None:
    if _sessions is not None:
        await _sessions.close()


def get_session_store() -> SessionStore:
    """FastAPI dependency returning the process-wide session store."""
    if _sessions is None:
        raise RuntimeError("Redis not initialised — call init_redis() at startup")
    return _sessions
