from unittest.mock import AsyncMock, Mock

import pytest
from redis.asyncio import ConnectionPool, Redis


@pytest.fixture
def mock_redis_client() -> AsyncMock:
    """Create a mock Redis client."""
    mock_redis = AsyncMock(spec=Redis)
    mock_redis.ping = AsyncMock(return_value=True)
    mock_redis.get = AsyncMock()
    mock_redis.set = AsyncMock(return_value=True)
    mock_redis.setex = AsyncMock(return_value=True)
    mock_redis.delete = AsyncMock(return_value=1)
    mock_redis.exists = AsyncMock(return_value=1)
    mock_redis.ttl = AsyncMock(return_value=-2)
    mock_redis.pipeline = Mock()
    mock_redis.aclose = AsyncMock()

    # Setup pipeline mock
    mock_pipeline = AsyncMock()
    for command in ("set", "incr", "get", "ttl", "zremrangebyscore", "zadd", "zcard", "expire"):
        setattr(mock_pipeline, command, Mock(return_value=mock_pipeline))
    mock_pipeline.execute = AsyncMock(return_value=[0, 1, 5, True])
    mock_redis.pipeline.return_value = mock_pipeline

    return mock_redis


@pytest.fixture
def mock_redis_pool() -> Mock:
    """Create a mock Redis ConnectionPool."""
    mock_pool = Mock(spec=ConnectionPool)
    mock_pool.connection_kwargs = {"protocol": "2"}
    return mock_pool
