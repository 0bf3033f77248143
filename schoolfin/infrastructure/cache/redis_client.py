from functools import lru_cache

from redis import Redis
from redis.exceptions import RedisError

from schoolfin.config import settings


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True, socket_connect_timeout=1, socket_timeout=1)


def redis_is_available(client: Redis) -> bool:
    try:
        return bool(client.ping())
    except RedisError:
        return False
