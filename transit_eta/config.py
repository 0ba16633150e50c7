"""
Configuration management using Pydantic BaseSettings.

All magic numbers and configurable values are externalized here.
Values can be overridden via environment variables (e.g., TETA_MAX_WORKERS=8).

Usage:
    from transit_eta.config import settings

    if speed_kmh < settings.heuristics.slow_speed_kmh:
        eta *= settings.heuristics.slow_speed_factor
"""

from typing import Optional
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LIVE_ETA_POLICIES = ("last_processed", "min_sequence")


class HeuristicProfile(BaseSettings):
    """Multiplicative factors applied when no prediction history exists."""

    model_config = SettingsConfigDict(
        env_prefix="TETA_HEURISTIC_",
        case_sensitive=False,
        extra="ignore",
    )

    rush_hour_factor: float = Field(1.3, description="Multiplier inside rush hour windows")
    night_factor: float = Field(0.9, description="Multiplier for night hours outside rush hour")
    night_start_hour: int = Field(22, description="First hour treated as night", ge=0, le=23)
    night_end_hour: int = Field(6, description="Last hour treated as night", ge=0, le=23)
    crowd_high_factor: float = Field(1.2, description="Multiplier for high crowding")
    crowd_low_factor: float = Field(0.95, description="Multiplier for low crowding")
    slow_speed_kmh: float = Field(10.0, description="Below this speed traffic is assumed")
    slow_speed_factor: float = Field(1.4, description="Multiplier for congested speeds")
    fast_speed_kmh: float = Field(40.0, description="Above this speed roads are assumed clear")
    fast_speed_factor: float = Field(0.9, description="Multiplier for clear-road speeds")


class AppConfig(BaseSettings):
    """
    Main application configuration.

    All values can be overridden via environment variables prefixed with 'TETA_'.
    Credentials are also read from the names the hosted functions use
    (OPENROUTE_SERVICE_KEY, SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY).
    """

    model_config = SettingsConfigDict(
        env_prefix="TETA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # External Route Oracle
    ORS_API_KEY: Optional[str] = Field(
        default=None,
        description="OpenRouteService API key",
        validation_alias=AliasChoices("TETA_ORS_API_KEY", "OPENROUTE_SERVICE_KEY"),
    )
    ORS_BASE_URL: str = Field(
        default="https://api.openrouteservice.org",
        description="OpenRouteService base URL",
    )
    ORS_PROFILE: str = Field(
        default="driving-car",
        description="Routing profile used for every oracle request",
    )
    ORACLE_TIMEOUT_S: float = Field(
        default=5.0,
        description="Per-call timeout for the route oracle in seconds",
        gt=0.0,
        le=60.0,
    )

    # Data Store
    STORE_URL: Optional[str] = Field(
        default=None,
        description="Base URL of the managed data store REST API",
        validation_alias=AliasChoices("TETA_STORE_URL", "SUPABASE_URL"),
    )
    STORE_SERVICE_KEY: Optional[str] = Field(
        default=None,
        description="Service key for the managed data store",
        validation_alias=AliasChoices("TETA_STORE_SERVICE_KEY", "SUPABASE_SERVICE_ROLE_KEY"),
    )
    STORE_TIMEOUT_S: float = Field(
        default=10.0,
        description="Per-request timeout for the data store in seconds",
        gt=0.0,
        le=120.0,
    )

    # Batch Settings
    STOPS_PER_VEHICLE: int = Field(
        default=3,
        description="How many stops of each route sequence are predicted",
        ge=1,
        le=50,
    )
    HISTORY_LIMIT: int = Field(
        default=10,
        description="Maximum historical samples used for calibration",
        ge=1,
        le=100,
    )
    MAX_WORKERS: int = Field(
        default=4,
        description="Worker pool size; bounds concurrent oracle requests",
        ge=1,
        le=64,
    )
    MODEL_VERSION: str = Field(
        default="v1.0",
        description="Tag recorded with every prediction",
    )
    LIVE_ETA_POLICY: str = Field(
        default="last_processed",
        description="Which stop feeds the live next-stop ETA: last_processed|min_sequence",
    )

    # Estimation Constants
    MIN_SPEED_KMH: float = Field(
        default=5.0,
        description="Speed floor for the baseline estimate",
        gt=0.0,
    )
    INTERNAL_WEIGHT: float = Field(
        default=0.7,
        description="Weight of the internal estimate when fusing",
        ge=0.0,
        le=1.0,
    )
    ORACLE_WEIGHT: float = Field(
        default=0.3,
        description="Weight of the oracle estimate when fusing",
        ge=0.0,
        le=1.0,
    )
    FALLBACK_CONFIDENCE_PENALTY: float = Field(
        default=0.8,
        description="Confidence multiplier when the oracle is unavailable",
        gt=0.0,
        le=1.0,
    )
    CONFIDENCE_DISTANCE_KM: float = Field(
        default=10.0,
        description="Distance at which distance-based confidence bottoms out",
        gt=0.0,
    )
    CONFIDENCE_FLOOR: float = Field(default=0.1, ge=0.0, le=1.0)
    CONFIDENCE_CEILING: float = Field(default=1.0, ge=0.0, le=1.0)

    heuristics: HeuristicProfile = Field(default_factory=HeuristicProfile)

    # Logging Configuration
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG|INFO|WARNING|ERROR|CRITICAL",
    )
    LOG_FORMAT: str = Field(
        default="json",
        description="Log format: json|text",
    )

    # Application Settings
    APP_NAME: str = Field(
        default="Transit ETA Engine",
        description="Application name for logging",
    )
    APP_VERSION: str = Field(
        default="1.0.0",
        description="Application version",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return upper_v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is supported."""
        valid_formats = {"json", "text"}
        lower_v = v.lower()
        if lower_v not in valid_formats:
            raise ValueError(f"LOG_FORMAT must be one of {valid_formats}")
        return lower_v

    @field_validator("LIVE_ETA_POLICY")
    @classmethod
    def validate_live_eta_policy(cls, v: str) -> str:
        """Validate the live ETA policy name."""
        lower_v = v.lower()
        if lower_v not in LIVE_ETA_POLICIES:
            raise ValueError(f"LIVE_ETA_POLICY must be one of {LIVE_ETA_POLICIES}")
        return lower_v

    @property
    def oracle_configured(self) -> bool:
        """True when the route oracle has credentials."""
        return bool(self.ORS_API_KEY)


# Singleton instance - import this in other modules
settings = AppConfig()


def get_settings() -> AppConfig:
    """
    Get the application settings instance.

    This function is useful for dependency injection patterns.

    Returns:
        AppConfig: The application configuration instance.
    """
    return settings
