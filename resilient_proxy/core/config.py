"""
Configuration management using Pydantic Settings.
"""
from typing import Optional, Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_proxy.core.exceptions import ConfigurationError


MIN_KEY_LENGTH = 16


class Settings(BaseSettings):
    """Application settings with environment variable support."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore"
    )
    
    # Application Configuration
    app_name: str = Field(default="resilient-proxy", alias="APP_NAME")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8010, alias="API_PORT")
    app_env: Literal["development", "production", "testing"] = Field(
        default="production", alias="APP_ENV"
    )
    
    # Authentication
    master_api_key: str = Field(default="", alias="MASTER_API_KEY")
    
    # Endpoints
    endpoints_file: str = Field(default="./endpoints.json", alias="ENDPOINTS_FILE")
    
    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    log_format: Literal["json", "text"] = Field(default="text", alias="LOG_FORMAT")
    
    # Recovery probe configuration (minutes, <= 0 disables)
    dead_provider_check_period: float = Field(default=10, alias="DEAD_PROVIDER_CHECK_PERIOD")
    probe_model: Optional[str] = Field(default=None, alias="PROBE_MODEL")
    
    # Seconds between retries against the same provider
    retry_backoff: float = Field(default=0.0, ge=0, alias="RETRY_BACKOFF")
    
    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"
    
    @property
    def host(self) -> str:
        """Get host address."""
        return self.app_host
    
    @property
    def port(self) -> int:
        """Get port number."""
        return self.app_port
    
    @property
    def probe_enabled(self) -> bool:
        """Whether the dead provider recovery loop should run."""
        return self.dead_provider_check_period > 0
    
    @property
    def probe_interval_seconds(self) -> float:
        """Recovery loop period in seconds."""
        return self.dead_provider_check_period * 60
    
    def validate_master_key(self) -> None:
        """
        Ensure the master API key is usable.
        
        Raises:
            ConfigurationError: If the key is missing or too short
        """
        if not self.master_api_key or len(self.master_api_key) < MIN_KEY_LENGTH:
            raise ConfigurationError(
                f"MASTER_API_KEY is required and must be at least {MIN_KEY_LENGTH} characters long."
            )


# Global settings instance
settings = Settings()
