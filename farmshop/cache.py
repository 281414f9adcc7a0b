import json
import logging

import redis

from .config import PRODUCTS_CACHE_TTL, REDIS_URL

logger = logging.getLogger(__name__)

PRODUCTS_KEY = "products_list"

cache = redis.Redis.from_url(REDIS_URL, decode_responses=True) if REDIS_URL else None


def get_products():
    if cache is None:
        return None
    try:
        cached = cache.get(PRODUCTS_KEY)
    except redis.RedisError as exc:
        logger.warning("Product cache read failed: %s", exc)
        return None
    return json.loads(cached) if cached else None


def set_products(products):
    if cache is None:
        return
    try:
        cache.set(PRODUCTS_KEY, json.dumps(products), ex=PRODUCTS_CACHE_TTL)
    except redis.RedisError as exc:
        logger.warning("Product cache write failed: %s", exc)


def invalidate_products():
    if cache is None:
        return
    try:
        cache.delete(PRODUCTS_KEY)
    except redis.RedisError as exc:
        logger.warning("Product cache invalidation failed: %s", exc)
