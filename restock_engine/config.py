"""Merkezi ayarlar. Proje kökündeki .env dosyası import sırasında yüklenir."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from restock_engine.errors import ValidationError
from restock_engine.models.inventory import RestockPolicy

_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    return value if value not in (None, "") else default


def _env_number(name: str, default: str, cast):
    raw = _env(name, default)
    try:
        return cast(raw)
    except (TypeError, ValueError, ArithmeticError) as e:
        raise ValidationError(f"Geçersiz ayar {name}={raw!r}") from e


@dataclass(frozen=True)
class Settings:
    region_name: str = "us-west-2"
    table_prefix: str = ""
    sns_topic_arn: Optional[str] = None
    sns_sender_id: Optional[str] = None
    max_send_attempts: int = 3
    retry_delay_seconds: float = 0.0
    critical_ratio: float = 0.5
    upcoming_window_days: int = 3
    lock_timeout: float = 10.0
    bulk_shipments_per_month: Decimal = Decimal("4")
    business_name: str = "Head Office"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            region_name=_env("RESTOCK_AWS_REGION") or _env("AWS_DEFAULT_REGION", "us-west-2"),
            table_prefix=_env("RESTOCK_TABLE_PREFIX", ""),
            sns_topic_arn=_env("RESTOCK_SNS_TOPIC_ARN"),
            sns_sender_id=_env("RESTOCK_SNS_SENDER_ID"),
            max_send_attempts=_env_number("RESTOCK_MAX_SEND_ATTEMPTS", "3", int),
            retry_delay_seconds=_env_number("RESTOCK_RETRY_DELAY_SECONDS", "0", float),
            critical_ratio=_env_number("RESTOCK_CRITICAL_RATIO", "0.5", float),
            upcoming_window_days=_env_number("RESTOCK_UPCOMING_WINDOW_DAYS", "3", int),
            lock_timeout=_env_number("RESTOCK_LOCK_TIMEOUT", "10", float),
            bulk_shipments_per_month=_env_number("RESTOCK_BULK_SHIPMENTS_PER_MONTH", "4", Decimal),
            business_name=_env("RESTOCK_BUSINESS_NAME", "Head Office"),
            log_level=_env("RESTOCK_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def policy(self) -> RestockPolicy:
        return RestockPolicy(
            critical_ratio=self.critical_ratio,
            upcoming_window_days=self.upcoming_window_days,
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
