"""
Application configuration loader (auth lifetimes, agreements, requests, AI editor, Telegram).
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "app_config.yml"


class AuthConfig(BaseModel):
    """Token lifetimes"""

    access_token_minutes: int = Field(default=15, ge=1, le=1440)
    refresh_token_days: int = Field(default=7, ge=1, le=365)
    owner_refresh_token_days: int = Field(default=30, ge=1, le=365)


class AgreementsConfig(BaseModel):
    default_city: str = "Phuket"
    print_token_ttl_seconds: int = Field(default=300, ge=10, le=3600)
    default_page_size: int = Field(default=20, ge=1, le=100)
    max_page_size: int = Field(default=100, ge=1, le=500)


class RequestsConfig(BaseModel):
    default_page_size: int = Field(default=20, ge=1, le=100)
    max_page_size: int = Field(default=100, ge=1, le=500)
    editable_fields: List[str] = Field(
        default_factory=lambda: [
            "description",
            "check_in_date",
            "check_out_date",
            "budget",
            "notes",
            "rental_period",
            "district",
            "rental_dates",
            "villa_name_address",
            "rental_cost",
            "cost_includes",
            "utilities_cost",
            "payment_terms",
            "deposit_amount",
            "additional_terms",
        ]
    )


class AIEditorConfig(BaseModel):
    """Gemini settings for the agreement editor"""

    model: str = "gemini-2.5-flash"
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=8192, ge=256, le=65536)
    max_retries: int = Field(default=3, ge=1, le=10)
    api_key_env: str = "GEMINI_API_KEY"


class TelegramConfig(BaseModel):
    api_base: str = "https://api.telegram.org"
    timeout_seconds: float = Field(default=15, gt=0, le=120)


class AppConfig(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    agreements: AgreementsConfig = Field(default_factory=AgreementsConfig)
    requests: RequestsConfig = Field(default_factory=RequestsConfig)
    ai_editor: AIEditorConfig = Field(default_factory=AIEditorConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)


def load_app_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load and validate application configuration from YAML file

    Args:
        config_path: Path to config file. Defaults to config/app_config.yml

    Returns:
        Validated AppConfig; model defaults are used when the file is absent.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning("App config file not found at %s; using defaults", config_path)
        return AppConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    try:
        cfg = AppConfig(**data)
        logger.info("Successfully loaded app config from %s", config_path)
        return cfg
    except ValidationError as e:
        logger.error("App config validation failed: %s", e)
        raise


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    return load_app_config()
