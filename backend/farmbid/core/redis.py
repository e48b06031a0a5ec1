from redis.asyncio import ConnectionPool, Redis

from farmbid.core.config import settings


class RedisClient:
    """
    Shared Redis connection for the user cache, auction event publishing
    and the event relay subscription.
    """

    def __init__(self):
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None

    async def connect(self) -> None:
        if self._pool is not None:
            return
        self._pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
        self._client = Redis(connection_pool=self._pool)

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        if self._pool is not None:
            await self._pool.disconnect()
        self._client = None
        self._pool = None

    def get_client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis client is not connected. Call connect() first.")
        return self._client

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return await self._client.ping()
        except Exception:
            return False

    async def available_client(self) -> Redis | None:
        """The client if Redis answers a ping, else None (publishing is skipped)."""
        if await self.ping():
            return self._client
        return None


redis_client = RedisClient()


async def get_redis() -> Redis:
    """FastAPI Dependency: Provide Redis client"""
    return redis_client.get_client()
