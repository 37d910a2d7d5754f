"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Every outbound integration owns its own settings group (base URL, credential,
pacing interval, timeout and per-operation cache freshness windows).
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate log file after N bytes (0 disables)")
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field("X-Request-ID", description="Header carrying the correlation id")

    model_config = SettingsConfigDict(env_prefix="LOG_", case_sensitive=False)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether manual trigger endpoints require X-API-Key",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for trigger endpoints",
    )
    warm_up_on_startup: bool = Field(
        True,
        description="Health-check every integration once before serving requests",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class GitHubSettings(BaseSettings):
    """GitHub App identity and webhook secret."""

    app_id: str | None = Field(None, description="GitHub App id")
    private_key: str | None = Field(
        None,
        description="PEM private key inline (escaped newlines are accepted)",
    )
    private_key_path: str | None = Field(None, description="Path to the PEM private key")
    webhook_secret: str | None = Field(None, description="Shared secret for webhook signatures")
    api_url: str = Field("https://api.github.com", description="GitHub REST API base URL")
    bot_mention: str = Field("@crypto-intel-bot", description="Mention token that prefixes bot commands")
    min_interval_seconds: float = Field(0.0, ge=0, description="Pacing between GitHub API calls")
    timeout_seconds: float = Field(10.0, gt=0, description="GitHub API request timeout")

    model_config = SettingsConfigDict(env_prefix="GITHUB_", case_sensitive=False)

    def resolved_private_key(self) -> str | None:
        """Return the PEM key from file when available, else from the env var."""

        if self.private_key_path:
            path = Path(self.private_key_path)
            if path.is_file():
                return path.read_text(encoding="utf-8")
        if self.private_key:
            return self.private_key.replace("\\n", "\n")
        return None


class IntegrationSettings(BaseSettings):
    """Shared shape for outbound HTTP integrations."""

    base_url: str
    api_key: str | None = None
    min_interval_seconds: float = Field(1.0, ge=0)
    timeout_seconds: float = Field(10.0, gt=0)
    cache_ttl_seconds: dict[str, float] = Field(default_factory=dict)

    def ttl(self, operation: str, default: float = 300.0) -> float:
        return self.cache_ttl_seconds.get(operation, default)


class CoinGeckoSettings(IntegrationSettings):
    base_url: str = "https://api.coingecko.com/api/v3"
    pro_base_url: str = "https://pro-api.coingecko.com/api/v3"
    pro_min_interval_seconds: float = Field(0.1, ge=0)
    cache_ttl_seconds: dict[str, float] = Field(
        default_factory=lambda: {
            "top_cryptos": 300,
            "coin": 120,
            "trending": 600,
            "global": 300,
            "defi": 600,
        }
    )

    model_config = SettingsConfigDict(env_prefix="COINGECKO_", case_sensitive=False)


class CoinDeskSettings(IntegrationSettings):
    base_url: str = "https://api.coindesk.com/v1"
    cache_ttl_seconds: dict[str, float] = Field(
        default_factory=lambda: {
            "current_price": 60,
            "historical": 3600,
            "price_index": 300,
        }
    )

    model_config = SettingsConfigDict(env_prefix="COINDESK_", case_sensitive=False)


class ArkhamSettings(IntegrationSettings):
    base_url: str = "https://api.arkhamintelligence.com/v1"
    min_interval_seconds: float = Field(0.5, ge=0)
    timeout_seconds: float = Field(15.0, gt=0)
    cache_ttl_seconds: dict[str, float] = Field(
        default_factory=lambda: {
            "address": 600,
            "transaction": 1800,
            "portfolio": 300,
            "large_transactions": 120,
            "sentiment": 900,
            "labels": 3600,
        }
    )

    model_config = SettingsConfigDict(env_prefix="ARKHAM_", case_sensitive=False)


class BlockchainSettings(BaseSettings):
    """JSON-RPC endpoints per network. Unset networks are not monitored."""

    ethereum_rpc_url: str | None = None
    polygon_rpc_url: str | None = None
    arbitrum_rpc_url: str | None = None
    optimism_rpc_url: str | None = None
    bsc_rpc_url: str | None = None
    rpc_min_interval_seconds: float = Field(0.2, ge=0)
    rpc_timeout_seconds: float = Field(10.0, gt=0)
    gas_price_ttl_seconds: float = Field(30.0, ge=0)

    model_config = SettingsConfigDict(case_sensitive=False)

    def rpc_urls(self) -> dict[str, str]:
        urls = {
            "ethereum": self.ethereum_rpc_url,
            "polygon": self.polygon_rpc_url,
            "arbitrum": self.arbitrum_rpc_url,
            "optimism": self.optimism_rpc_url,
            "bsc": self.bsc_rpc_url,
        }
        return {name: url for name, url in urls.items() if url}


class ExplorerSettings(BaseSettings):
    """Etherscan-family explorer APIs, used for verified contract source."""

    etherscan_api_key: str | None = None
    etherscan_api_url: str = "https://api.etherscan.io/api"
    polygonscan_api_key: str | None = None
    polygonscan_api_url: str = "https://api.polygonscan.com/api"
    arbiscan_api_key: str | None = None
    arbiscan_api_url: str = "https://api.arbiscan.io/api"
    explorer_min_interval_seconds: float = Field(0.2, ge=0)
    explorer_timeout_seconds: float = Field(10.0, gt=0)
    explorer_source_ttl_seconds: float = Field(3600.0, ge=0)

    model_config = SettingsConfigDict(case_sensitive=False)

    def endpoints(self) -> dict[str, tuple[str, str | None]]:
        """Explorer ``(url, api_key)`` per network."""

        return {
            "ethereum": (self.etherscan_api_url, self.etherscan_api_key),
            "polygon": (self.polygonscan_api_url, self.polygonscan_api_key),
            "arbitrum": (self.arbiscan_api_url, self.arbiscan_api_key),
        }


class DeFiSettings(BaseSettings):
    uniswap_subgraph_url: str = "https://api.thegraph.com/subgraphs/name/uniswap/uniswap-v3"
    aave_api_url: str = "https://api.aave.com/data"
    compound_api_url: str = "https://api.compound.finance/api/v2"
    min_interval_seconds: float = Field(1.0, ge=0)
    timeout_seconds: float = Field(15.0, gt=0)
    protocol_ttl_seconds: float = Field(300.0, ge=0)

    model_config = SettingsConfigDict(env_prefix="DEFI_", case_sensitive=False)


class MonitoringSettings(BaseSettings):
    update_interval_minutes: int = Field(30, ge=1, le=59)
    gas_price_threshold_gwei: float = Field(50.0, gt=0)
    price_change_threshold_percent: float = Field(5.0, gt=0)
    cache_max_entries: int = Field(100, ge=1, description="Per-client cache ceiling")
    cache_trim_count: int = Field(20, ge=1, description="Entries dropped when the ceiling is exceeded")

    model_config = SettingsConfigDict(env_prefix="MONITORING_", case_sensitive=False)


class SchedulerSettings(BaseSettings):
    """Cron schedules for the default recurring tasks."""

    enabled: bool = True
    gas_monitoring: str = "*/5 * * * *"
    market_data: str = "*/15 * * * *"
    defi_monitoring: str | None = Field(
        None,
        description="Defaults to every MONITORING_UPDATE_INTERVAL_MINUTES minutes",
    )
    network_monitoring: str = "0 * * * *"
    health_check: str = "*/10 * * * *"

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", case_sensitive=False)


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file. Nested groups
    are built through default_factory so each one reads its own env prefix.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=LogSettings)
    app: AppSettings = Field(default_factory=AppSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    coingecko: CoinGeckoSettings = Field(default_factory=CoinGeckoSettings)
    coindesk: CoinDeskSettings = Field(default_factory=CoinDeskSettings)
    arkham: ArkhamSettings = Field(default_factory=ArkhamSettings)
    blockchain: BlockchainSettings = Field(default_factory=BlockchainSettings)
    explorer: ExplorerSettings = Field(default_factory=ExplorerSettings)
    defi: DeFiSettings = Field(default_factory=DeFiSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
