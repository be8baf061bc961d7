from __future__ import annotations

import pytest
from pydantic import ValidationError

from lockin.core.config import Settings, get_settings


def test_settings_are_cached():
    assert get_settings() is get_settings()


def test_test_environment_uses_in_memory_db():
    s = get_settings()
    assert s.database_url == "sqlite://"
    assert s.timezone == "UTC"
    assert s.api_key is None


def test_untracked_policy_is_validated():
    assert Settings(untracked_usage_policy="drop").untracked_usage_policy == "drop"
    with pytest.raises(ValidationError):
        Settings(untracked_usage_policy="ignore")


def test_data_dir_created_on_import():
    from lockin.core.db import DATA_DIR
    from lockin.api.main import app  # noqa: F401

    assert DATA_DIR.exists()
