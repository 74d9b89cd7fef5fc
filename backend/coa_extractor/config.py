"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    app_name: str = "COA Extraction API"
    debug: bool = False

    # CORS - Allow all origins for prototype (restrict in production)
    cors_origins: list[str] = ["*"]

    # Input limits
    max_text_chars: int = 2_000_000  # OCR text of a long multi-page COA stays well below this

    # Batch processing (sequential recommended on small instances)
    max_batch_size: int = 50
    max_workers: int = 1  # 1 = run in-process, >1 = process pool

    # Strategy runner
    early_exit_confidence: int = 85  # Stop once a partial reaches this with THC + total
    context_window_chars: int = 100  # Chars either side of a keyword for contextual search

    # Terpene panel
    terpene_panel_max_chars: int = 4000  # Panel slice cap when no end marker is found
    terpene_parse_limit: int = 5
    terpene_result_limit: int = 3  # Terpenes kept on the final record
    terpene_fuzzy_threshold: int = 85  # rapidfuzz score for OCR-garbled analyte names
    terpene_confidence_boost: int = 8

    # Confidence bias from text quality
    quality_penalty_fair: int = 5
    quality_penalty_poor: int = 10

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
