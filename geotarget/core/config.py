# geotarget/core/config.py
import logging
import os
from pathlib import Path
from typing import Annotated, List, Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path.cwd() / ".env"
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    # Directory REST API
    api_base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the business directory API (no trailing /api)",
    )
    http_timeout_seconds: float = Field(
        default=10.0, description="Timeout applied to every directory API request"
    )

    # Reverse geocoding
    geocoding_provider: Literal["nominatim", "mock"] = Field(
        default="nominatim", description="Reverse geocoding provider: nominatim|mock"
    )
    nominatim_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        description="Nominatim base URL used for reverse geocoding",
    )
    nominatim_user_agent: str = Field(
        default="geotarget/1.0",
        description="User-Agent sent to Nominatim (required by its usage policy)",
    )
    reverse_geocode_timeout_seconds: float = Field(default=8.0)

    # Geolocation bootstrap
    geolocation_timeout_seconds: float = Field(
        default=10.0, description="Hard bound on acquiring a position fix"
    )
    default_city_names: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["riyadh", "الرياض"],
        description="Names (substring, case-insensitive) of the home city used as hard default",
    )

    # Unified search suggestions
    suggestion_debounce_ms: int = Field(default=300, ge=0)
    suggestion_min_query_length: int = Field(default=2, ge=1)
    suggestion_category_limit: int = Field(default=5, ge=1)
    suggestion_business_limit: int = Field(default=5, ge=1)
    suggestion_place_limit: int = Field(default=5, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    structured_logs: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="GEOTARGET_",
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("api_base_url", "nominatim_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("default_city_names", mode="before")
    @classmethod
    def _split_city_names(cls, value: object) -> object:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def suggestion_debounce_seconds(self) -> float:
        return self.suggestion_debounce_ms / 1000.0


settings = Settings()
