"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- FetchConfig: HTTP fetching settings
- ExtractConfig: Content extraction settings
- SummaryConfig: LLM summarization settings
- ProviderConfig: LLM provider settings
- PricingConfig: Token pricing used for cost estimates
- StorageConfig: Database location
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import os
from pathlib import Path
from typing import Any

import yaml

try:
    from dotenv import load_dotenv
except Exception:  # noqa: BLE001
    load_dotenv = None


@dataclass
class FetchConfig:
    """Configuration for HTTP content fetching.

    Attributes:
        timeout_seconds: Ceiling for a whole request
        accepted_retry_delay: Wait before the single retry after a 202 response
        trust_env: Whether to respect system proxy settings
        user_agent: HTTP User-Agent header string
        accept: HTTP Accept header string
        accept_language: HTTP Accept-Language header string
    """

    timeout_seconds: float = 30.0
    accepted_retry_delay: float = 0.75
    trust_env: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/122.0.0.0 Safari/537.36"
    )
    accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    accept_language: str = "en-US,en;q=0.9"


@dataclass
class ExtractConfig:
    """Configuration for HTML content extraction.

    Attributes:
        max_content_chars: Stored content is truncated to this length
        content_selectors: CSS selectors tried for the main content container
        noise_tags: Elements removed before conversion
    """

    max_content_chars: int = 10000
    content_selectors: list[str] = field(
        default_factory=lambda: [
            "article",
            "main",
            "[role=main]",
            ".content",
            "#content",
            ".post",
            ".entry-content",
        ]
    )
    noise_tags: list[str] = field(
        default_factory=lambda: ["script", "style", "nav", "header", "footer", "aside"]
    )


@dataclass
class SummaryConfig:
    """Configuration for LLM summarization.

    Attributes:
        max_input_chars: Maximum characters of page text sent to the LLM
        summary_max_tokens: Token ceiling for the summary
        summary_temperature: Sampling temperature for the summary
        metadata_max_tokens: Token ceiling for category/tag suggestions
        metadata_temperature: Sampling temperature for suggestions
    """

    max_input_chars: int = 8000
    summary_max_tokens: int = 200
    summary_temperature: float = 0.7
    metadata_max_tokens: int = 100
    metadata_temperature: float = 0.3


@dataclass
class ProviderConfig:
    """Configuration for the LLM provider.

    Attributes:
        name: Provider name ("openai" and compatible endpoints)
        model: Model identifier
        base_url: Base URL of the chat completions API
        api_key_env: Environment variable name containing the API key
        api_key: Optional inline API key (overrides env var)
        timeout_seconds: Request timeout for provider calls
        trust_env: Whether to respect system proxy settings for API requests
    """

    name: str = "openai"
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    api_key: str | None = None
    timeout_seconds: float = 30.0
    trust_env: bool = True


@dataclass
class PricingConfig:
    """USD per million tokens, used for informational cost estimates."""

    input_per_million: float = 0.15
    output_per_million: float = 0.60


@dataclass
class StorageConfig:
    """Configuration for the content store.

    Attributes:
        db_path: SQLite file path; None resolves to ~/.config/lm/lm.db
        db_path_env: Environment variable that overrides db_path
    """

    db_path: str | None = None
    db_path_env: str = "DB_PATH"


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the log file, placed in the config directory
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    filename: str = "lm.jsonl"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = {
    "provider": ProviderConfig,
    "fetch": FetchConfig,
    "extract": ExtractConfig,
    "summary": SummaryConfig,
    "pricing": PricingConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
}


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig. Unknown keys are ignored."""
    data = asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            known = {k: v for k, v in value.items() if k in data[key]}
            data[key].update(known)
    return AppConfig(**{name: cls(**data[name]) for name, cls in _SECTIONS.items()})


def config_dir() -> Path:
    """Return ~/.config/lm, creating it if needed."""
    path = Path.home() / ".config" / "lm"
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    return path


def load_env_file(directory: Path | None = None) -> None:
    """Load a .env file from the config directory if python-dotenv is present."""
    if load_dotenv is None:
        return
    directory = directory or config_dir()
    env_path = directory / ".env"
    if env_path.exists():
        load_dotenv(env_path)


def get_api_key(cfg: ProviderConfig) -> str | None:
    """Get API key from inline config or environment variable."""
    if cfg.api_key:
        return cfg.api_key
    return os.getenv(cfg.api_key_env) or None


def get_db_path(cfg: StorageConfig) -> Path:
    """Resolve the database path: env var, then config, then default."""
    env_value = os.getenv(cfg.db_path_env)
    if env_value:
        return Path(env_value).expanduser()
    if cfg.db_path:
        return Path(cfg.db_path).expanduser()
    return config_dir() / "lm.db"
