"""
Tests for settings loading.

Run with: pytest tests/test_config.py -v
"""

import pytest
from pydantic import ValidationError

from core.config import Settings


class TestRequiredSettings:
    @pytest.mark.parametrize("missing", ["SECRET_KEY", "DATABASE_URL"])
    def test_missing_required_setting_fails(self, monkeypatch, missing):
        monkeypatch.delenv(missing, raising=False)
        with pytest.raises(ValidationError) as exc:
            Settings(_env_file=None)
        assert missing in str(exc.value)

    def test_loads_from_environment(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", "s3cret")
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        settings = Settings(_env_file=None)
        assert settings.SECRET_KEY == "s3cret"
        assert settings.ACCESS_CODE_MAX_ATTEMPTS == 3
