"""Application configuration. Loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "repair_desk.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )
    # Seconds a writer waits for the sqlite write lock
    DATABASE_TIMEOUT: float = float(os.getenv("DATABASE_TIMEOUT", "30"))

    # Document numbering (settings.json overrides .env)
    ORDER_NUMBER_PREFIX: str = _runtime.get(
        "order_number_prefix",
        os.getenv("ORDER_NUMBER_PREFIX", "ORD"),
    )
    INVOICE_NUMBER_PREFIX: str = _runtime.get(
        "invoice_number_prefix",
        os.getenv("INVOICE_NUMBER_PREFIX", "INV"),
    )

    # Procurement
    DEFAULT_PART_ORDER_LEAD_DAYS: int = int(_runtime.get(
        "default_part_order_lead_days",
        os.getenv("DEFAULT_PART_ORDER_LEAD_DAYS", "3"),
    ))

    # Billing
    CURRENCY: str = _runtime.get(
        "currency",
        os.getenv("CURRENCY", "PLN"),
    )
    COMPANY_NAME: str = _runtime.get(
        "company_name",
        os.getenv("COMPANY_NAME", "Repair Desk Service"),
    )

    # Remote backend (HttpBackend)
    API_BASE_URL: str = _runtime.get(
        "api_base_url",
        os.getenv("API_BASE_URL", "http://localhost:8080"),
    )
    API_TIMEOUT: int = int(_runtime.get(
        "api_timeout",
        os.getenv("API_TIMEOUT", "30"),
    ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_numbering(cls, order_prefix: str, invoice_prefix: str):
        """Update document number prefixes and persist to disk."""
        cls.ORDER_NUMBER_PREFIX = order_prefix
        cls.INVOICE_NUMBER_PREFIX = invoice_prefix

        settings = _load_settings()
        settings["order_number_prefix"] = order_prefix
        settings["invoice_number_prefix"] = invoice_prefix
        _save_settings(settings)

    @classmethod
    def update_procurement_settings(cls, lead_days: int):
        """Update the default part order lead time (days) and persist."""
        cls.DEFAULT_PART_ORDER_LEAD_DAYS = lead_days

        settings = _load_settings()
        settings["default_part_order_lead_days"] = lead_days
        _save_settings(settings)

    @classmethod
    def update_billing_settings(cls, currency: str, company_name: str):
        """Update invoice currency and issuer name and persist."""
        cls.CURRENCY = currency
        cls.COMPANY_NAME = company_name

        settings = _load_settings()
        settings["currency"] = currency
        settings["company_name"] = company_name
        _save_settings(settings)

    @classmethod
    def update_api_settings(cls, base_url: str, timeout: int):
        """Update remote backend settings at runtime and persist to disk."""
        cls.API_BASE_URL = base_url
        cls.API_TIMEOUT = timeout

        settings = _load_settings()
        settings["api_base_url"] = base_url
        settings["api_timeout"] = timeout
        _save_settings(settings)
