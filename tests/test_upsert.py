"""Tests for the dialect-aware insert helper."""
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from app.models import InventoryBucket
from app.utils.upsert import dialect_insert


def _session(dialect_name):
    bind = SimpleNamespace(dialect=SimpleNamespace(name=dialect_name))
    return SimpleNamespace(get_bind=lambda: bind)


class TestDialectInsert:
    def test_postgresql(self):
        assert isinstance(dialect_insert(_session("postgresql"), InventoryBucket), postgresql.Insert)

    def test_sqlite(self):
        assert isinstance(dialect_insert(_session("sqlite"), InventoryBucket), sqlite.Insert)

    def test_unsupported_dialect_is_a_runtime_error(self):
        with pytest.raises(RuntimeError, match="mysql"):
            dialect_insert(_session("mysql"), InventoryBucket)
