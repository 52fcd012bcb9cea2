"""Application configuration using pydantic-settings."""
from typing import List
from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///data/reviewhub.db"

    # Logging
    log_level: str = "INFO"

    # Frontend origins allowed by CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Aggregation defaults (used when a program has no review settings)
    default_scoring_method: str = "average"
    default_consensus_threshold: float = 0.2  # normalized [0,1] units
    default_min_reviews_per_application: int = 1
    default_max_reviews_per_application: int = 3

    # Scale of the single overall score carried by legacy reviews
    legacy_score_max: float = 10.0

    # Seed the built-in criteria templates on first start
    seed_default_templates: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()

# Ensure data directory exists
DATA_DIR = Path(__file__).parent.parent.parent / "data"
DATA_DIR.mkdir(exist_ok=True)
