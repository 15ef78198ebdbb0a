import sys

import pytest

from app import _limiter_storage
from config import DevelopmentConfig


def test_limiter_storage_defaults_to_memory():
    assert _limiter_storage(None) == "memory://"


def test_limiter_storage_without_redis_package(monkeypatch):
    # A None entry makes "import redis" raise ImportError
    monkeypatch.setitem(sys.modules, "redis", None)
    assert _limiter_storage("redis://localhost:6379/0") == "memory://"


def test_limiter_storage_with_unreachable_server():
    assert _limiter_storage("redis://127.0.0.1:1/0") == "memory://"


def test_development_cache_without_redis_package(monkeypatch):
    monkeypatch.setitem(sys.modules, "redis", None)

    with pytest.warns(UserWarning, match="SimpleCache"):
        config = DevelopmentConfig()

    assert config.CACHE_TYPE == "SimpleCache"
