"""Cliente Redis para cache de lecturas"""
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError
import json
from typing import Optional, Any, Iterable
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None
redis_pool: Optional[ConnectionPool] = None


async def init_redis():
    """Inicializar conexión a Redis con pool de conexiones"""
    global redis_client, redis_pool

    if not settings.CACHE_ENABLED:
        logger.info("Cache deshabilitado (CACHE_ENABLED=false), Redis no se inicializa")
        return

    redis_pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        retry_on_timeout=True,
        health_check_interval=30,
    )

    redis_client = redis.Redis(connection_pool=redis_pool)

    try:
        await redis_client.ping()
        logger.info(f"Redis conectado exitosamente (pool max_connections={settings.REDIS_MAX_CONNECTIONS})")
    except (RedisError, OSError) as e:
        # La API sigue funcionando sin cache; las lecturas caen a la base de datos
        logger.error(f"Error conectando a Redis: {e}")


async def get_redis() -> Optional[redis.Redis]:
    """Obtener cliente Redis (None si el cache está deshabilitado)"""
    return redis_client


async def close_redis():
    """Cerrar conexión a Redis y pool"""
    global redis_client, redis_pool
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None
    logger.info("Redis desconectado")


class RedisCache:
    """
    Cache JSON sobre Redis.

    Los errores de Redis nunca llegan al llamador: una lectura fallida
    se trata como miss y una escritura o invalidación fallida solo se loguea.
    """

    def __init__(self, client: Optional[redis.Redis], default_ttl: int = 300):
        self.client = client
        self.default_ttl = default_ttl

    async def get(self, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            value = await self.client.get(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        if self.client is None:
            return
        try:
            await self.client.setex(key, ttl or self.default_ttl, json.dumps(value, default=str))
        except (RedisError, OSError) as e:
            logger.warning(f"Cache set failed for {key}: {e}")

    async def delete(self, keys: Iterable[str]):
        keys = list(keys)
        if self.client is None or not keys:
            return
        try:
            await self.client.delete(*keys)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache invalidation failed for {len(keys)} keys: {e}")


async def get_cache() -> RedisCache:
    """Dependency de FastAPI que entrega el cache compartido"""
    return RedisCache(await get_redis(), default_ttl=settings.CACHE_TTL_SECONDS)
