"""
Configuration management using environment variables.
Handles all API, database and logging settings with validation and defaults.
"""

from typing import List, Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from pathlib import Path


class AppConfig(BaseSettings):
    """
    Configuration class for the book review API.
    Uses pydantic BaseSettings for environment variable management.
    """

    # API Settings
    api_title: str = "Book Review Platform API"
    api_version: str = "1.0.0"

    # Server Settings
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8000, env="PORT")
    environment: str = Field(default="development", env="ENVIRONMENT")
    debug: bool = Field(default=False, env="DEBUG")

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017", env="MONGODB_URL")
    mongodb_database: str = Field(default="book_reviews", env="MONGODB_DATABASE")

    # Security Settings
    secret_key: str = Field(default="change-me-in-production", env="SECRET_KEY")
    access_token_expire_minutes: int = Field(default=60 * 24, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Query Settings
    default_page_limit: int = Field(default=10, env="DEFAULT_PAGE_LIMIT")
    max_page_limit: Optional[int] = Field(default=None, env="MAX_PAGE_LIMIT")
    featured_limit: int = Field(default=6, env="FEATURED_LIMIT")

    # CORS Settings
    cors_origins: List[str] = ["*"]

    # Logging Configuration
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @validator('environment')
    def validate_environment(cls, v):
        """Ensure environment is a known deployment mode."""
        valid_environments = ['development', 'production', 'test']
        if v.lower() not in valid_environments:
            raise ValueError(f'environment must be one of: {valid_environments}')
        return v.lower()

    @validator('access_token_expire_minutes', 'default_page_limit', 'featured_limit')
    def validate_positive(cls, v):
        """Ensure durations and limits are positive."""
        if v < 1:
            raise ValueError('value must be at least 1')
        return v

    @validator('max_page_limit')
    def validate_max_page_limit(cls, v):
        """A configured page cap must allow at least one item."""
        if v is not None and v < 1:
            raise ValueError('max_page_limit must be at least 1')
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production" and not self.debug


# Global configuration instance
config = AppConfig()
