"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).

The flat ``Settings`` object is projected into the explicit ``StoreConfig``
and ``EngineConfig`` models that the store client and KPI engine receive
through their constructors.
"""

from datetime import tzinfo
from functools import lru_cache
from typing import List
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FieldCodes(BaseModel):
    """Short field codes used by the telemetry store inside each row's ``data`` map."""

    units_produced: str = Field(default="D6", description="Units produced")
    rejection_count: str = Field(default="D52", description="Rejected units")
    rejection_reason: str = Field(default="D53", description="Free-text rejection reason")
    downtime_seconds: str = Field(default="D9", description="Downtime duration in seconds")
    status_indicator: str = Field(default="D2", description="Machine status text")
    mold_identifier: str = Field(default="D17", description="Mold name")
    target_units: str = Field(default="D10", description="Target production")

    # Mold-mapping reference device
    mapping_mold_name: str = Field(default="D0", description="Mold name in mapping rows")
    mapping_cycle_time: str = Field(default="D2", description="Cycle time (s) in mapping rows")


class StoreConfig(BaseModel):
    """Connection settings for the telemetry document store."""

    data_url: str = Field(default="datads.iosense.io", description="Store host")
    protocol: str = Field(default="https", description="http or https")
    user_id: str = Field(default="", description="Identity sent in the userID header")
    rows_endpoint: str = Field(default="/api/table/getRows3", description="Row query path")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout")
    max_retries: int = Field(default=2, ge=1, le=5, description="Attempts per request")

    @property
    def rows_url(self) -> str:
        """Full URL of the row query endpoint."""
        return f"{self.protocol}://{self.data_url}{self.rows_endpoint}"


class EngineConfig(BaseModel):
    """Tunables of the KPI engine."""

    plant_timezone: str = Field(default="Asia/Kolkata", description="Local plant timezone")
    cycle_boundary_hour: int = Field(
        default=8, ge=0, le=23, description="Hour at which an operational day starts"
    )
    fetch_limit: int = Field(default=10000, ge=1, description="Max rows per telemetry fetch")
    reference_device_id: str = Field(
        default="SDPLYPLC_AM2_MoldMapping", description="Mold-to-cycle-time mapping device"
    )
    reference_fetch_limit: int = Field(default=1000, ge=1, description="Max mapping rows")
    top_reasons_limit: int = Field(default=3, ge=1, description="Reasons in the KPI snapshot")
    request_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout applied around each store call"
    )
    fields: FieldCodes = Field(default_factory=FieldCodes)

    @property
    def timezone(self) -> tzinfo:
        """Resolved plant timezone."""
        return ZoneInfo(self.plant_timezone)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Telemetry store
    store_data_url: str = Field(default="datads.iosense.io", description="Store host")
    store_protocol: str = Field(default="https", description="Store protocol")
    store_user_id: str = Field(default="", description="Store identity header value")
    store_timeout_seconds: float = Field(default=30.0, gt=0, description="Store HTTP timeout")
    store_max_retries: int = Field(default=2, ge=1, le=5, description="Store attempts")

    # Engine
    plant_timezone: str = Field(default="Asia/Kolkata", description="Plant timezone")
    cycle_boundary_hour: int = Field(default=8, ge=0, le=23, description="Cycle boundary hour")
    fetch_limit: int = Field(default=10000, ge=1, description="Telemetry fetch limit")
    reference_device_id: str = Field(
        default="SDPLYPLC_AM2_MoldMapping", description="Mold mapping device"
    )
    reference_fetch_limit: int = Field(default=1000, ge=1, description="Mold mapping fetch limit")
    top_reasons_limit: int = Field(default=3, ge=1, description="Top rejection reasons")
    request_timeout_seconds: float = Field(default=30.0, gt=0, description="Store call timeout")

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_reload: bool = Field(default=True, description="Enable hot reload")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="CORS allowed origins (comma-separated)",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")
    testing: bool = Field(default=False, description="Testing mode")

    @property
    def cors_origin_list(self) -> List[str]:
        """Parse comma-separated CORS origins."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def store_config(self) -> StoreConfig:
        """Project store settings into a StoreConfig."""
        return StoreConfig(
            data_url=self.store_data_url,
            protocol=self.store_protocol,
            user_id=self.store_user_id,
            timeout_seconds=self.store_timeout_seconds,
            max_retries=self.store_max_retries,
        )

    def engine_config(self) -> EngineConfig:
        """Project engine settings into an EngineConfig."""
        return EngineConfig(
            plant_timezone=self.plant_timezone,
            cycle_boundary_hour=self.cycle_boundary_hour,
            fetch_limit=self.fetch_limit,
            reference_device_id=self.reference_device_id,
            reference_fetch_limit=self.reference_fetch_limit,
            top_reasons_limit=self.top_reasons_limit,
            request_timeout_seconds=self.request_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
