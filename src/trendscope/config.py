from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

class AppSettings(BaseSettings):
    name: str = "TrendScope"
    version: str = "1.0.0"

class SecuritySettings(BaseSettings):
    """
    Optional auth and request guardrails.
    """
    api_token: Optional[str] = None  # Bearer token or X-API-Key
    max_body_mb: int = 5  # Hard cap for request bodies (Content-Length guard)

class LoggingSettings(BaseSettings):
    log_requests: bool = True
    format: str = "console"  # console | json
    level: str = "INFO"

class TrendSettings(BaseSettings):
    """
    Thresholds used when classifying fail-count trends.
    Slopes are fail counts per period, rates are percentages.
    """
    slope_threshold: float = 0.05
    slope_warning: float = 0.05
    slope_critical: float = 0.15
    rate_warning: float = 10.0
    rate_critical: float = 25.0
    fail_rate_warning: float = 5.0
    fail_rate_critical: float = 15.0
    consecutive_increase: int = 3

class AISettings(BaseSettings):
    enabled: bool = False
    provider: str = "offline"  # offline|http
    base_url: Optional[str] = None  # used when provider=http
    api_key: Optional[str] = None
    model: str = "gpt-4o"
    max_tokens: int = 1500
    temperature: float = 0.3
    timeout_seconds: int = 30
    prediction_periods: int = 7
    period_type: str = "daily"  # daily|weekly|monthly
    history_window: int = 14  # trailing points sent in the prompt
    critical_threshold: int = 5000
    resolution_threshold: int = 100

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")
    app: AppSettings = AppSettings()
    security: SecuritySettings = SecuritySettings()
    logging: LoggingSettings = LoggingSettings()
    trends: TrendSettings = TrendSettings()
    ai: AISettings = AISettings()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        # Load from default path if exists
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()

        with open(path, "r") as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

settings = Settings.load()
