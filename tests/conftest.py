"""Root conftest — suite markers and the session-scoped Redis container."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import pytest
import redis as sync_redis
from redis.asyncio import Redis
from testcontainers.core.container import DockerContainer

logger = logging.getLogger(__name__)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Attach suite markers from test path.

    - `tests/unit/*` -> `unit`
    - `tests/integration/*` -> `integration`
    """
    root = Path(__file__).resolve().parents[1]
    for item in items:
        item_path = Path(str(item.fspath)).resolve()
        try:
            rel = item_path.relative_to(root)
        except ValueError:
            continue

        parts = rel.parts
        if len(parts) < 2 or parts[0] != "tests":
            continue
        if parts[1] == "unit":
            item.add_marker(pytest.mark.unit)
        elif parts[1] == "integration":
            item.add_marker(pytest.mark.integration)


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

REDIS_READY_ATTEMPTS = 30


def _wait_for_redis(host: str, port: int) -> None:
    client = sync_redis.Redis(host=host, port=port)
    try:
        for attempt in range(1, REDIS_READY_ATTEMPTS + 1):
            try:
                client.ping()
                return
            except sync_redis.ConnectionError as exc:
                if attempt == REDIS_READY_ATTEMPTS:
                    raise
                logger.debug("Waiting for Redis attempt=%d error=%s", attempt, exc)
                time.sleep(1)
    finally:
        client.close()


@pytest.fixture(scope="session")
def redis_container():
    """Yield the URL of a Redis 7 container shared by the whole run.

    Only the denylist integration suite requests it, so unit runs never
    start Docker.
    """
    with DockerContainer("redis:7-alpine").with_exposed_ports(6379) as container:
        host = container.get_container_host_ip()
        port = int(container.get_exposed_port(6379))
        _wait_for_redis(host, port)
        yield f"redis://{host}:{port}"


@pytest.fixture()
async def redis_client(redis_container):
    """Yield an async Redis client, flushing the database afterwards."""
    client = Redis.from_url(redis_container)
    yield client
    await client.flushdb()
    await client.aclose()
