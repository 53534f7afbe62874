"""
Runtime configuration for the dispatch console.

Values come from the process environment; a local `.env` file is loaded
first so development setups don't have to export anything.
"""
import logging
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


class Settings(BaseModel):
    # Extraction oracle
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.3-70b-versatile"
    oracle_timeout_seconds: float = 15.0

    # Geocoding
    google_maps_api_key: Optional[str] = None
    geocode_timeout_seconds: float = 10.0

    # Reconciler timing
    debounce_seconds: float = Field(default=1.0, gt=0)
    throttle_seconds: float = Field(default=3.0, ge=0)

    # Confidence stamped on every field applied in one extraction round.
    # Placeholder model: a constant, not an estimate.
    extraction_confidence: float = Field(default=0.85, ge=0.0, le=1.0)

    log_level: str = "INFO"
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        values = {
            "groq_api_key": os.getenv("GROQ_API_KEY"),
            "google_maps_api_key": os.getenv("GOOGLE_MAPS_API_KEY"),
        }
        optional = {
            "groq_model": "GROQ_MODEL",
            "oracle_timeout_seconds": "SENTINEL_ORACLE_TIMEOUT_SECONDS",
            "geocode_timeout_seconds": "SENTINEL_GEOCODE_TIMEOUT_SECONDS",
            "debounce_seconds": "SENTINEL_DEBOUNCE_SECONDS",
            "throttle_seconds": "SENTINEL_THROTTLE_SECONDS",
            "extraction_confidence": "SENTINEL_EXTRACTION_CONFIDENCE",
            "log_level": "SENTINEL_LOG_LEVEL",
        }
        for field_name, env_name in optional.items():
            raw = os.getenv(env_name)
            if raw:
                values[field_name] = raw

        origins = os.getenv("SENTINEL_ALLOWED_ORIGINS")
        if origins:
            values["allowed_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        return cls(**values)


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
