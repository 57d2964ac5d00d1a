import hashlib
import json
import logging
from typing import Any, Optional

from redis import Redis
from redis import asyncio as aioredis
from langchain_core.globals import set_llm_cache
from langchain_community.cache import RedisCache, RedisSemanticCache
from langchain_openai import OpenAIEmbeddings

from checkmate.core.config import config

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

_async_client: Optional[aioredis.Redis] = None


def get_async_client() -> aioredis.Redis:
    """Lazily create the shared async Redis client (no connection is opened here)."""
    global _async_client
    if _async_client is None:
        _async_client = aioredis.from_url(config.REDIS_URL, decode_responses=True)
    return _async_client


def cache_key(namespace: str, *parts: str) -> str:
    digest = hashlib.sha256("\x1f".join(p.lower().strip() for p in parts).encode()).hexdigest()
    return f"checkmate:{namespace}:{digest}"


def init_global_cache(semantic: bool = False) -> None:
    """Initializes a global Redis cache for LangChain LLM calls."""
    try:
        redis_client = Redis.from_url(config.REDIS_URL)
        redis_client.ping()
    except Exception as e:
        logger.error(f"Failed to connect to Redis server, LLM cache disabled: {e}")
        return

    if semantic:
        logger.info("Initializing Redis Semantic Cache with OpenAI embeddings.")
        cache = RedisSemanticCache(
            redis_url=config.REDIS_URL,
            embedding=OpenAIEmbeddings(model="text-embedding-3-small", api_key=config.OPENAI_API_KEY),
            index_name=config.REDIS_SEMANTIC_INDEX,
            score_threshold=0.15,
        )
    else:
        logger.info("Initializing standard Redis Cache.")
        cache = RedisCache(redis_=redis_client, ttl=config.CACHE_TTL)

    set_llm_cache(cache)
    logger.info("Global Redis LLM cache initialized successfully.")


async def cache_get(key: str) -> Optional[Any]:
    """Retrieve a JSON value from the Redis cache by key."""
    if not config.CACHE_ENABLED:
        return None
    try:
        value = await get_async_client().get(key)
    except Exception as e:
        logger.error(f"Error retrieving key {key} from cache: {e}")
        return None
    if value is None:
        logger.info(f"Cache miss for key: {key}")
        return None
    logger.info(f"Cache hit for key: {key}")
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning(f"Discarding undecodable cache entry: {key}")
        return None


async def cache_set(key: str, value: Any, ttl: int = config.CACHE_TTL) -> None:
    """Set a JSON value in the Redis cache with a TTL."""
    if not config.CACHE_ENABLED:
        return
    try:
        await get_async_client().set(name=key, value=json.dumps(value), ex=ttl)
        logger.info(f"Cache set for key: {key} with TTL: {ttl} seconds")
    except Exception as e:
        logger.error(f"Error setting key {key} in cache: {e}")
