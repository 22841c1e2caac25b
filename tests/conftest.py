from __future__ import annotations

import pytest

from watchlog.records.store import RecordStore


@pytest.fixture
def store(tmp_path) -> RecordStore:
    return RecordStore(tmp_path / "data")
