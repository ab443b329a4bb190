"""Shared test fixtures."""

from pathlib import Path

import pytest

from crystallize.db import RecordStore
from crystallize.errors import PersistenceFailure
from crystallize.llm.models import ModelManager


class FailingRecordStore(RecordStore):
    """A record store whose writes always fail (e.g. disk full)."""

    async def put(self, key: str, value: str) -> None:
        raise PersistenceFailure(f"Could not write record {key}")

    async def delete(self, key: str) -> bool:
        raise PersistenceFailure(f"Could not delete record {key}")


@pytest.fixture
def records(tmp_path: Path) -> RecordStore:
    """Create a RecordStore backed by a temp database."""
    return RecordStore(db_path=tmp_path / "test.db")


@pytest.fixture
def failing_records(tmp_path: Path) -> FailingRecordStore:
    return FailingRecordStore(db_path=tmp_path / "failing.db")


@pytest.fixture(autouse=True)
def _reset_model_manager():
    ModelManager._reset()
    yield
    ModelManager._reset()
