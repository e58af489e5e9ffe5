"""
Tests for durable storage backends and the storage failure boundary.
"""
import logging

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from grimoire.cache import MemoryStorage, SqlStorage, StorageResult
from grimoire.cache.storage import discard_storage_failure
from grimoire.db import init_db, make_session_factory


@pytest.fixture
def sql_storage():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return SqlStorage(make_session_factory(engine))


@pytest.fixture(params=["memory", "sql"])
def any_storage(request, sql_storage):
    if request.param == "memory":
        return MemoryStorage()
    return sql_storage


def test_missing_key_reads_as_none(any_storage):
    result = any_storage.read("nothing")

    assert result.ok is True
    assert result.value is None


def test_write_read_overwrite_remove(any_storage):
    assert any_storage.write("k", "v1").ok
    assert any_storage.write("k", "v2").ok
    assert any_storage.read("k").value == "v2"

    assert any_storage.remove("k").ok
    assert any_storage.read("k").value is None
    assert any_storage.remove("k").ok


def test_sql_failures_are_reported_not_raised():
    engine = create_engine("sqlite://", poolclass=StaticPool)
    # no tables created: every statement fails
    storage = SqlStorage(make_session_factory(engine))

    assert storage.read("k").ok is False
    result = storage.write("k", "v")
    assert result.ok is False
    assert "cache_storage" in result.error


def test_discard_logs_failures_only(caplog):
    with caplog.at_level(logging.WARNING, logger="cache.storage"):
        discard_storage_failure(StorageResult.success(), "write", "k")
        discard_storage_failure(StorageResult.failure("disk full"), "write", "k")

    assert len(caplog.records) == 1
    assert "disk full" in caplog.records[0].getMessage()
