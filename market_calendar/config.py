"""
Configuration management for the market calendar pipeline.

This module handles:
- Centralized configuration
- Environment variable support
- Configuration validation
- Logging setup
"""

import os
import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Optional, List

logger = logging.getLogger(__name__)

# Binance spot trading opened in July 2017; nothing earlier is served.
BINANCE_LAUNCH_DATE = date(2017, 7, 1)


@dataclass
class ApiConfig:
    """API configuration."""
    base_url: str = "https://api.binance.com/api/v3"
    timeout: int = 30
    page_size: int = 1000


@dataclass
class RateLimitConfig:
    """Rate limit configuration."""
    max_requests: int = 1200
    time_window: float = 60.0
    safety_margin: float = 0.1


@dataclass
class VolatilityConfig:
    """Blended volatility configuration."""
    window: int = 7
    daily_weight: float = 0.6
    rolling_weight: float = 0.4


@dataclass
class FetchConfig:
    """Kline fetch configuration."""
    launch_date: date = BINANCE_LAUNCH_DATE
    max_range_days: int = 1000
    month_lookback_days: int = 30


@dataclass
class AlertConfig:
    """Alert notification configuration."""
    channels: List[str] = field(default_factory=lambda: ["log"])


@dataclass
class Config:
    """Main configuration class."""
    api: ApiConfig = field(default_factory=ApiConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    volatility: VolatilityConfig = field(default_factory=VolatilityConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'Config':
        """Create configuration from environment variables."""
        launch = os.getenv("BINANCE_LAUNCH_DATE")
        return cls(
            api=ApiConfig(
                base_url=os.getenv("BINANCE_BASE_URL", "https://api.binance.com/api/v3"),
                timeout=int(os.getenv("BINANCE_TIMEOUT", "30")),
                page_size=int(os.getenv("KLINE_PAGE_SIZE", "1000"))
            ),
            rate_limit=RateLimitConfig(
                max_requests=int(os.getenv("MAX_REQUESTS", "1200")),
                time_window=float(os.getenv("RATE_LIMIT_WINDOW", "60.0")),
                safety_margin=float(os.getenv("RATE_LIMIT_SAFETY_MARGIN", "0.1"))
            ),
            volatility=VolatilityConfig(
                window=int(os.getenv("VOLATILITY_WINDOW", "7")),
                daily_weight=float(os.getenv("VOLATILITY_DAILY_WEIGHT", "0.6")),
                rolling_weight=float(os.getenv("VOLATILITY_ROLLING_WEIGHT", "0.4"))
            ),
            fetch=FetchConfig(
                launch_date=date.fromisoformat(launch) if launch else BINANCE_LAUNCH_DATE,
                max_range_days=int(os.getenv("MAX_RANGE_DAYS", "1000")),
                month_lookback_days=int(os.getenv("MONTH_LOOKBACK_DAYS", "30"))
            ),
            alerts=AlertConfig(
                channels=os.getenv("ALERT_CHANNELS", "log").split(",")
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE")
        )

    @classmethod
    def from_file(cls, file_path: str) -> 'Config':
        """Create configuration from JSON file."""
        with open(file_path, 'r') as f:
            config_data = json.load(f)

        fetch_data = dict(config_data.get('fetch', {}))
        if 'launch_date' in fetch_data:
            fetch_data['launch_date'] = date.fromisoformat(fetch_data['launch_date'])

        return cls(
            api=ApiConfig(**config_data.get('api', {})),
            rate_limit=RateLimitConfig(**config_data.get('rate_limit', {})),
            volatility=VolatilityConfig(**config_data.get('volatility', {})),
            fetch=FetchConfig(**fetch_data),
            alerts=AlertConfig(**config_data.get('alerts', {})),
            **{k: v for k, v in config_data.items()
               if k not in ['api', 'rate_limit', 'volatility', 'fetch', 'alerts']}
        )

    def to_file(self, file_path: str):
        """Save configuration to JSON file."""
        config_dict = asdict(self)
        config_dict['fetch']['launch_date'] = self.fetch.launch_date.isoformat()

        with open(file_path, 'w') as f:
            json.dump(config_dict, f, indent=2)

    def validate(self):
        """Validate configuration values."""
        errors = []

        if not self.api.base_url.startswith(('http://', 'https://')):
            errors.append("API base URL must start with http:// or https://")

        if self.api.timeout <= 0:
            errors.append("API timeout must be positive")

        if not 0 < self.api.page_size <= 1000:
            errors.append("Page size must be between 1 and 1000")

        if self.rate_limit.max_requests <= 0:
            errors.append("Max requests must be positive")

        if self.rate_limit.time_window <= 0:
            errors.append("Rate limit window must be positive")

        if self.rate_limit.safety_margin < 0:
            errors.append("Safety margin must not be negative")

        if self.volatility.window < 2:
            errors.append("Volatility window must be at least 2")

        if self.volatility.daily_weight < 0 or self.volatility.rolling_weight < 0:
            errors.append("Volatility weights must not be negative")

        if self.fetch.max_range_days <= 0:
            errors.append("Max range days must be positive")

        if self.fetch.month_lookback_days < 0:
            errors.append("Month lookback days must not be negative")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        logger.info("Configuration validation passed")

    def setup_logging(self):
        """Set up logging based on configuration."""
        level = getattr(logging, self.log_level.upper())
        logging.basicConfig(level=level)

        if self.log_file:
            handler = logging.FileHandler(self.log_file)
            handler.setLevel(level)
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logging.getLogger().addHandler(handler)

        logger.info(f"Logging configured with level {self.log_level}")
