"""Application settings using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Language server process
    lsp_server_command: str = Field(
        default="typescript-language-server",
        description="Executable of the language server",
    )
    lsp_server_args: list[str] = Field(
        default_factory=lambda: ["--stdio"],
        description="Arguments selecting stdio communication",
    )
    lsp_log_level_env: str = Field(
        default="TYPESCRIPT_LSP_LOG_LEVEL",
        description="Environment variable controlling server log verbosity",
    )
    lsp_log_level: str = Field(
        default="2",
        description="Value assigned to the log verbosity variable",
    )
    lsp_log_verbosity: str = Field(
        default="off",
        description="tsserver log verbosity sent in initializationOptions",
    )
    lsp_client_name: str = "lspmux"
    lsp_client_version: str = "0.1.0"

    # Timeouts
    lsp_spawn_timeout_seconds: float = Field(
        default=5.0,
        description="Time allowed for the server process to spawn (seconds)",
    )
    lsp_initialize_timeout_seconds: float = Field(
        default=10.0,
        description="Time allowed for the initialize response (seconds)",
    )
    lsp_request_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for individual LSP requests (seconds)",
    )
    lsp_shutdown_timeout_seconds: float = Field(
        default=2.0,
        description="Time allowed for the graceful shutdown request (seconds)",
    )
    lsp_idle_timeout_seconds: float = Field(
        default=0.0,
        description="Idle time before a workspace session is stopped; 0 disables",
    )

    # Workspace keys
    lsp_workspace_tag: str = Field(
        default="typescript-lsp",
        description="Tag appended to workspace roots to isolate sessions",
    )
    lsp_workspace_delimiter: str = "#"

    # OpenTelemetry
    otel_enabled: bool = Field(
        default=False,
        description="Enable OpenTelemetry traces and metrics",
    )
    otel_service_name: str = "lspmux"
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_traces_sampler: str = Field(
        default="parentbased_traceidratio",
        description="always_on, always_off, traceidratio or parentbased_traceidratio",
    )
    otel_traces_sampler_arg: float = 1.0


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
