"""Centralized configuration for content-search-server using Pydantic Settings."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Values are validated once at startup; the resulting object is handed to
    the app builder and never read from the environment again.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    database_path: str = Field(default="data/content_search.db", description="SQLite database file")
    sqlite_busy_timeout_ms: int = Field(default=5000, ge=0, description="SQLite busy timeout in milliseconds")

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=3014, ge=1, le=65535, description="Server listen port")
    service_name: str = Field(default="content_search", description="Service name reported by health and telemetry")

    # Paging
    default_page_size: int = Field(default=50, ge=1, description="Default search page size")
    max_page_size: int = Field(default=200, ge=1, description="Upper bound accepted for the limit parameter")

    # Logging
    log_level: str = Field(default="info", pattern=r"^(?i:debug|info|warning|error|critical)$")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    access_log: bool = Field(default=False, description="Enable uvicorn access logging")

    # OpenTelemetry export
    otlp_enabled: bool = Field(default=False, description="Export traces, metrics and logs over OTLP")
    otlp_protocol: Literal["http", "grpc"] = Field(default="grpc", description="OTLP transport protocol")
    otlp_endpoint: str = Field(default="http://localhost:4317", description="OTLP collector endpoint")
    otlp_timeout_seconds: int = Field(default=10, ge=1, le=60, description="OTLP exporter timeout in seconds")
    otlp_insecure: bool = Field(default=True, description="Allow plaintext gRPC connections")

    @model_validator(mode="after")
    def _check_page_sizes(self) -> "Settings":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"DEFAULT_PAGE_SIZE ({self.default_page_size}) must not exceed MAX_PAGE_SIZE ({self.max_page_size})"
            )
        return self

    def is_debug(self) -> bool:
        """Check if the server runs with debug logging."""
        return self.log_level.lower() == "debug"

    def otlp_config(self) -> "OtlpExportConfig":
        """Collect the OTLP exporter settings into one value object."""
        return OtlpExportConfig(
            enabled=self.otlp_enabled,
            protocol=self.otlp_protocol,
            endpoint=self.otlp_endpoint,
            timeout_seconds=self.otlp_timeout_seconds,
            insecure=self.otlp_insecure,
        )


class OtlpExportConfig(BaseModel):
    """Where and how traces, metrics and logs are exported."""

    model_config = {"frozen": True}

    enabled: bool = False
    protocol: Literal["http", "grpc"] = "grpc"
    endpoint: str = "http://localhost:4317"
    timeout_seconds: int = 10
    insecure: bool = True

    def signal_endpoint(self, signal: str) -> str:
        """Return the endpoint for ``signal`` ("traces", "metrics" or "logs").

        HTTP collectors take one path per signal; gRPC uses the bare endpoint.
        """
        if self.protocol != "http":
            return self.endpoint
        base = self.endpoint.rstrip("/")
        for suffix in ("/v1/traces", "/v1/metrics", "/v1/logs"):
            if base.endswith(suffix):
                base = base.removesuffix(suffix)
                break
        return f"{base}/v1/{signal}"
