from __future__ import annotations

from pathlib import Path

import pytest

from app.settings import Settings
from store.db import close_database, open_database


@pytest.fixture
def db(tmp_path: Path):
    database = open_database(tmp_path / "alerts.db")
    yield database
    close_database(database)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        db_path=tmp_path / "alerts.db",
        feeds_dir=tmp_path / "feeds",
        background_ingest_delay_seconds=0.0,
    )
