"""Ayar yükleme unit testleri."""

from decimal import Decimal

import pytest

from restock_engine.config import Settings
from restock_engine.errors import ValidationError


class TestSettingsFromEnv:
    """RESTOCK_* ortam değişkenleri."""

    def test_defaults(self, monkeypatch):
        for name in ("RESTOCK_AWS_REGION", "AWS_DEFAULT_REGION", "RESTOCK_MAX_SEND_ATTEMPTS",
                     "RESTOCK_CRITICAL_RATIO", "RESTOCK_BULK_SHIPMENTS_PER_MONTH", "RESTOCK_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()

        assert settings.region_name == "us-west-2"
        assert settings.max_send_attempts == 3
        assert settings.policy.critical_ratio == 0.5
        assert settings.bulk_shipments_per_month == Decimal("4")
        assert settings.log_level == "INFO"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("RESTOCK_AWS_REGION", "eu-central-1")
        monkeypatch.setenv("RESTOCK_TABLE_PREFIX", "prod-")
        monkeypatch.setenv("RESTOCK_CRITICAL_RATIO", "0.25")
        monkeypatch.setenv("RESTOCK_UPCOMING_WINDOW_DAYS", "5")
        monkeypatch.setenv("RESTOCK_LOG_LEVEL", "debug")
        settings = Settings.from_env()

        assert settings.region_name == "eu-central-1"
        assert settings.table_prefix == "prod-"
        assert settings.policy.critical_ratio == 0.25
        assert settings.policy.upcoming_window_days == 5
        assert settings.log_level == "DEBUG"

    def test_region_falls_back_to_aws_default(self, monkeypatch):
        monkeypatch.delenv("RESTOCK_AWS_REGION", raising=False)
        monkeypatch.setenv("AWS_DEFAULT_REGION", "ap-south-1")
        assert Settings.from_env().region_name == "ap-south-1"

    def test_invalid_number(self, monkeypatch):
        monkeypatch.setenv("RESTOCK_MAX_SEND_ATTEMPTS", "three")
        with pytest.raises(ValidationError):
            Settings.from_env()

    def test_invalid_policy(self):
        with pytest.raises(ValidationError):
            Settings(critical_ratio=1.5).policy
