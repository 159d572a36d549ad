"""
Application Configuration

All settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # EODHD market data provider
    eodhd_api_token: Optional[str] = None
    eodhd_base_url: str = "https://eodhd.com/api"
    eodhd_ws_url: str = "wss://ws.eodhistoricaldata.com/ws"
    user_agent: str = "marketcore/0.1"

    # Upstream timeouts (seconds)
    historical_timeout: float = 20.0
    quote_timeout: float = 10.0
    indicator_timeout: float = 15.0
    search_timeout: float = 10.0

    # Live feed
    live_poll_interval: float = 2.5
    live_refresh_interval: float = 270.0  # 4.5 minutes
    reconnect_base_delay_ms: int = 1000
    reconnect_max_delay_ms: int = 30000
    price_spike_threshold: float = 0.10  # reject bare prices >10% off last close

    # Support / resistance
    pivot_left: int = 4
    pivot_right: int = 4
    pivot_max_count: int = 10
    sr_lookback_bars: int = 50

    # Trade setup
    min_bars_for_setup: int = 20

    # Timeframes whose indicators come from the provider's technical endpoint
    remote_indicator_timeframes: list[str] = ["1d", "1w", "1M"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
