"""Arq worker settings."""

from arq.connections import RedisSettings

from app.config import get_settings

settings = get_settings()


def parse_redis_url(url: str) -> RedisSettings:
    """Parse a redis:// or rediss:// URL into RedisSettings.

    Supports ``[user:]password@`` credentials and a ``/db`` suffix.
    """
    ssl = url.startswith("rediss://")
    url = url.split("://", 1)[-1]

    password = None
    if "@" in url:
        auth, url = url.rsplit("@", 1)
        password = auth.split(":", 1)[-1] or None

    hostport, _, db = url.partition("/")
    host, _, port = hostport.partition(":")

    return RedisSettings(
        host=host or "localhost",
        port=int(port) if port else 6379,
        password=password,
        database=int(db) if db else 0,
        ssl=ssl,
    )


redis_settings = parse_redis_url(settings.redis_url)
