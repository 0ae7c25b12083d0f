"""
API configuration settings.
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Library Management API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Database Settings
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "library"

    # API Key Settings
    api_keys: str = ""  # Comma-separated list of valid API keys, empty disables auth

    # CRUD statistics
    stats_collection: str = "stats"
    stats_document_name: str = "crud-stats"
    stats_excluded_paths: List[str] = ["/health", "/docs", "/redoc", "/openapi.json"]

    # Library rules
    default_page_size: int = 20
    max_page_size: int = 100
    loan_period_days: int = 14

    # CORS Settings
    cors_origins: list = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    @field_validator('loan_period_days', 'default_page_size', 'max_page_size')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError('must be a positive integer')
        return v

    def get_api_keys(self) -> List[str]:
        """Parse the comma-separated API keys."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]


# Global config instance
config = APIConfig()
