"""Configuration management for Supomeshi Coach.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults
"""

import os

from dotenv import load_dotenv


# Load .env file (if exists, silently continues if missing)
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        # Image Detection Model: vision model used to recognize ingredients in photos
        self.IMAGE_DETECTION_MODEL: str = os.getenv("IMAGE_DETECTION_MODEL", "gemini-2.5-flash")
        # Recipe Model: model that plans the dinner menu (structured JSON output)
        self.RECIPE_MODEL: str = os.getenv("RECIPE_MODEL", "gemini-2.5-pro")
        # Server Port
        self.PORT: int = int(os.getenv("PORT", "7777"))
        # Maximum image size (in MB) that can be processed. Default: 5 MB
        self.MAX_IMAGE_SIZE_MB: int = int(os.getenv("MAX_IMAGE_SIZE_MB", "5"))
        # Maximum number of images per analysis request. Default: 10
        self.MAX_IMAGES: int = int(os.getenv("MAX_IMAGES", "10"))
        # Minimum confidence score (0.0 - 1.0) for an ingredient to start out confirmed. Default: 0.6
        self.MIN_INGREDIENT_CONFIDENCE: float = float(os.getenv("MIN_INGREDIENT_CONFIDENCE", "0.6"))
        # Recipe history window: meals generated within this many days are not suggested again
        self.HISTORY_RETENTION_DAYS: int = int(os.getenv("HISTORY_RETENTION_DAYS", "30"))
        # Image Compression: Enable/disable image compression before processing
        self.COMPRESS_IMG: bool = os.getenv("COMPRESS_IMG", "true").lower() in ("true", "1", "yes")
        # Image Compression Threshold: Only compress if image size is at or above this (in KB)
        self.COMPRESS_IMG_THRESHOLD_KB: int = int(os.getenv("COMPRESS_IMG_THRESHOLD_KB", "300"))
        # Data directory for persisted profiles and recipe history (JSON files)
        self.DATA_DIR: str = os.getenv("DATA_DIR", "tmp/supomeshi")
        # LLM Model Parameters
        # Temperature: 0.4 leaves room for menu variety without drifting off the nutrition rules
        self.TEMPERATURE: float = float(os.getenv("TEMPERATURE", "0.4"))
        # Max Output Tokens: a full menu in Japanese fits comfortably in 4096
        self.MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "4096"))
        # Retry Configuration - transient Gemini failures (timeouts, 429, 5xx)
        # MAX_RETRIES: total attempts per upstream call
        self.MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
        # DELAY_BETWEEN_RETRIES: Initial delay in seconds (doubled on each retry)
        self.DELAY_BETWEEN_RETRIES: int = int(os.getenv("DELAY_BETWEEN_RETRIES", "1"))

    def validate(self) -> None:
        """Validate required configuration.

        Raises:
            ValueError: If required API keys are missing or invalid values provided.
        """
        if not self.GEMINI_API_KEY:
            raise ValueError("GEMINI_API_KEY environment variable is required")
        if not (0.0 <= self.MIN_INGREDIENT_CONFIDENCE <= 1.0):
            raise ValueError(
                f"MIN_INGREDIENT_CONFIDENCE must be between 0.0 and 1.0, got: {self.MIN_INGREDIENT_CONFIDENCE}"
            )
        if self.HISTORY_RETENTION_DAYS < 1:
            raise ValueError(
                f"HISTORY_RETENTION_DAYS must be at least 1, got: {self.HISTORY_RETENTION_DAYS}"
            )
        if self.MAX_IMAGES < 1:
            raise ValueError(f"MAX_IMAGES must be at least 1, got: {self.MAX_IMAGES}")
        if not (0.0 <= self.TEMPERATURE <= 1.0):
            raise ValueError(
                f"TEMPERATURE must be between 0.0 and 1.0, got: {self.TEMPERATURE}"
            )
        if self.MAX_OUTPUT_TOKENS < 512:
            raise ValueError(
                f"MAX_OUTPUT_TOKENS must be at least 512, got: {self.MAX_OUTPUT_TOKENS}"
            )
        if self.MAX_RETRIES < 1:
            raise ValueError(
                f"MAX_RETRIES must be at least 1, got: {self.MAX_RETRIES}"
            )
        if self.DELAY_BETWEEN_RETRIES < 1:
            raise ValueError(
                f"DELAY_BETWEEN_RETRIES must be at least 1 second, got: {self.DELAY_BETWEEN_RETRIES}"
            )


# Create module-level config instance and validate immediately
config = Config()
config.validate()
