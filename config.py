"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
from datetime import date
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, model_validator

load_dotenv()

_PROJECT_ROOT = Path(__file__).resolve().parent

logger = logging.getLogger(__name__)


class Config(BaseModel):
    """Centralised app configuration backed by env vars."""

    # Pricing
    tax_rate: float = 0.0825
    tax_cutoff_date: date = date(2019, 9, 1)
    tax_item_name: str = "Tax"
    employee_price_multiplier: float = 1.25

    # App paths
    database_path: str = str(_PROJECT_ROOT / "data" / "bikeshop.db")
    template_dir: str = str(_PROJECT_ROOT / "templates")

    # Email
    shop_name: str = "Bike Shop"
    email_enabled: bool = False
    email_from: str = ""
    smtp_host: str = ""
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""

    # Flask
    flask_host: str = "127.0.0.1"
    flask_port: int = 5000
    flask_debug: bool = True
    flask_secret_key: str = "change-me-in-production"  # noqa: S105
    cors_origins: list[str] = ["http://localhost:4200"]

    @model_validator(mode="after")
    def _check_fields(self) -> Config:
        """Reject impossible pricing values and warn about half-configured email."""
        if self.tax_rate < 0:
            msg = f"TAX_RATE must not be negative, got {self.tax_rate}"
            raise ValueError(msg)
        if self.employee_price_multiplier <= 0:
            msg = "EMPLOYEE_PRICE_MULTIPLIER must be positive"
            raise ValueError(msg)
        if self.email_enabled and not self.smtp_host:
            logger.warning("EMAIL_ENABLED is set but SMTP_HOST is empty, emails will be skipped")
        return self

    @classmethod
    def from_env(cls) -> Config:
        """Build config from environment variables."""
        cors_raw = os.getenv("CORS_ORIGINS", "http://localhost:4200")
        cors_origins = [o.strip() for o in cors_raw.split(",") if o.strip()]

        return cls(
            tax_rate=float(os.getenv("TAX_RATE", "0.0825")),
            tax_cutoff_date=date.fromisoformat(os.getenv("TAX_CUTOFF_DATE", "2019-09-01")),
            tax_item_name=os.getenv("TAX_ITEM_NAME", "Tax"),
            employee_price_multiplier=float(os.getenv("EMPLOYEE_PRICE_MULTIPLIER", "1.25")),
            database_path=os.getenv(
                "DATABASE_PATH", str(_PROJECT_ROOT / "data" / "bikeshop.db")
            ),
            template_dir=os.getenv("TEMPLATE_DIR", str(_PROJECT_ROOT / "templates")),
            shop_name=os.getenv("SHOP_NAME", "Bike Shop"),
            email_enabled=os.getenv("EMAIL_ENABLED", "false").lower() in ("1", "true", "yes"),
            email_from=os.getenv("EMAIL_FROM", ""),
            smtp_host=os.getenv("SMTP_HOST", ""),
            smtp_port=int(os.getenv("SMTP_PORT", "465")),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            flask_host=os.getenv("FLASK_HOST", "127.0.0.1"),
            flask_port=int(os.getenv("FLASK_PORT", "5000")),
            flask_debug=os.getenv("FLASK_DEBUG", "true").lower() in ("1", "true", "yes"),
            flask_secret_key=os.getenv("FLASK_SECRET_KEY", "change-me-in-production"),
            cors_origins=cors_origins,
        )


settings = Config.from_env()
