from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trust_engine.config import get_settings


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point every settings path into ``tmp_path`` and reset the cached instance."""

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TRUST_RULES_PATH", str(tmp_path / "rules.yaml"))
    monkeypatch.setenv("TRUST_LEXICON_PATH", str(tmp_path / "lexicon.yaml"))
    monkeypatch.setenv("TRUST_SCORING_PATH", str(tmp_path / "scoring.yaml"))
    monkeypatch.setenv("TRUST_DB_PATH", str(tmp_path / "trust.db"))
    get_settings.cache_clear()
    try:
        yield tmp_path
    finally:
        get_settings.cache_clear()
