"""Configuration management for the Miyomi content pipeline."""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # Application
    app_name: str = "Miyomi"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = Field(None, description="Optional log file path")
    
    # Market data
    market_data_mode: str = Field("live", description="'live' APIs or bundled 'fixture' data")
    polymarket_base_url: str = Field("https://gamma-api.polymarket.com", description="Polymarket API base URL")
    kalshi_base_url: str = Field(
        "https://api.elections.kalshi.com/trade-api/v2", description="Kalshi API base URL"
    )
    kalshi_api_key: Optional[str] = Field(None, description="Kalshi API key")
    max_markets_per_source: int = Field(100, description="Pagination safety cap per source")
    source_timeout_seconds: float = Field(10.0, description="Abandon a source after this many seconds")
    request_timeout: int = Field(8, description="HTTP request timeout in seconds")
    max_retries: int = Field(1, description="Retries for 5xx/transport errors")
    aggregate_limit: int = Field(50, description="Markets kept after aggregation")
    
    # LLM
    anthropic_api_key: Optional[str] = Field(None, description="Anthropic API key")
    anthropic_model: str = Field("claude-3-5-sonnet-20241022", description="Model used for content")
    
    # Farcaster
    neynar_api_key: Optional[str] = Field(None, description="Neynar API key")
    farcaster_signer_uuid: Optional[str] = Field(None, description="Neynar managed signer UUID")
    neynar_base_url: str = Field("https://api.neynar.com/v2", description="Neynar API base URL")
    shortlink_base_url: str = Field("https://miyomi.vercel.app", description="Base URL for /m/<id> links")
    
    # Storage
    state_path: str = Field("data/miyomi-state.json", description="JSON state file")
    
    # Scheduling (local wall-clock, HH:MM)
    daily_pick_time: str = Field("12:00", description="Daily pick time")
    performance_update_time: str = Field("18:00", description="Performance update time")
    
    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()
    
    @field_validator("market_data_mode")
    @classmethod
    def validate_market_data_mode(cls, v: str) -> str:
        """Validate market data mode."""
        valid_modes = {"live", "fixture"}
        if v.lower() not in valid_modes:
            raise ValueError(f"Market data mode must be one of {valid_modes}")
        return v.lower()
    
    @field_validator("daily_pick_time", "performance_update_time")
    @classmethod
    def validate_clock_time(cls, v: str) -> str:
        """Validate HH:MM times."""
        parts = v.split(":")
        if len(parts) != 2 or not all(part.isdigit() for part in parts):
            raise ValueError("Times must use HH:MM format")
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError("Times must use HH:MM format")
        return f"{hour:02d}:{minute:02d}"
    
    @property
    def llm_enabled(self) -> bool:
        """Whether content generation can call the LLM."""
        return bool(self.anthropic_api_key)
    
    @property
    def publishing_enabled(self) -> bool:
        """Whether casts can actually be published."""
        return bool(self.neynar_api_key and self.farcaster_signer_uuid)


# Global settings instance
settings = Settings()
