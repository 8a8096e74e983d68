"""x402-sentinel — Service configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with SENTINEL_
       (nested keys use ``__``: SENTINEL_ENGINE__TRIGGER_MODE=edge)
    3. System config: /etc/x402-sentinel/config.yaml
    4. User config:   ~/.x402-sentinel/config.yaml
    5. Explicit ``--config`` file

YAML top-level sections replace the corresponding env-derived section
wholesale (they are passed to the constructor as init arguments).

Call ``Settings.load()`` once at startup and inject the instance through
FastAPI dependencies.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8402, ge=1024, le=65535)
    rate_limit_per_minute: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=30,
        description="Max POST /watchers requests per minute per client IP.",
    )


class SecurityConfig(BaseModel):
    admin_token: str | None = Field(
        default=None,
        description=(
            "Token required (X-Sentinel-Admin-Token header) for operator and "
            "watcher-type registration and for POST /cron/check. None = open."
        ),
    )


class StoreConfig(BaseModel):
    db_path: Path = Field(
        default=Path("~/.x402-sentinel/sentinel.db"),
        description="SQLite database holding operators, types, watchers, payments and receipts.",
    )


class EngineConfig(BaseModel):
    """Configuration for the trigger engine and its periodic scheduler."""

    scheduler_enabled: bool = Field(
        default=False,
        description=(
            "Run cycles in-process every interval_seconds. Leave disabled when an "
            "external cron calls POST /cron/check."
        ),
    )
    interval_seconds: Annotated[float, Field(gt=0, le=86400)] = 60.0
    max_concurrency: Annotated[int, Field(ge=1, le=200)] = Field(
        default=10,
        description="Maximum watchers evaluated in parallel within one cycle.",
    )
    check_timeout_seconds: Annotated[float, Field(gt=0, le=300)] = 15.0
    delivery_timeout_seconds: Annotated[float, Field(gt=0, le=300)] = 10.0
    trigger_mode: Literal["level", "edge"] = Field(
        default="level",
        description=(
            "level: deliver on every cycle while the condition holds. "
            "edge: deliver only when the condition becomes true."
        ),
    )
    overlap_policy: Literal["reject", "queue"] = Field(
        default="reject",
        description="What to do with a cycle request while another cycle runs.",
    )


class MarketplaceConfig(BaseModel):
    network: str = Field(
        default="eip155:8453",
        description="CAIP-2 network recorded on payments and receipts (Base mainnet).",
    )
    rail: str = "x402"
    source: str = Field(
        default="x402-sentinel",
        description="Value of the ``source`` field in webhook payloads.",
    )


class EvaluatorConfig(BaseModel):
    rpc_urls: dict[str, str] = Field(
        default_factory=lambda: {
            "base": "https://mainnet.base.org",
            "ethereum": "https://eth.llamarpc.com",
            "optimism": "https://mainnet.optimism.io",
            "arbitrum": "https://arb1.arbitrum.io/rpc",
        },
        description="JSON-RPC endpoint per chain for the wallet-balance evaluator.",
    )
    coingecko_api_url: str = "https://api.coingecko.com/api/v3"
    request_timeout_seconds: Annotated[float, Field(gt=0, le=120)] = 10.0


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None
    events_file: Path | None = Field(
        default=Path("~/.x402-sentinel/events.ndjson"),
        description="NDJSON sink for cycle / trigger / error events. None = discard.",
    )


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SENTINEL_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    marketplace: MarketplaceConfig = Field(default_factory=MarketplaceConfig)
    evaluators: EvaluatorConfig = Field(default_factory=EvaluatorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("store", mode="before")
    @classmethod
    def expand_store_path(cls, v: object) -> object:
        if isinstance(v, dict) and isinstance(v.get("db_path"), str):
            v["db_path"] = Path(v["db_path"]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/x402-sentinel/config.yaml"),
            Path.home() / ".x402-sentinel" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml  # lazy import, only needed when a file exists

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton, replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
