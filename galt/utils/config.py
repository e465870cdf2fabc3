"""
Configuration Management
========================

Centralized configuration for the bot. Every environment variable is read,
validated and typed here, so the rest of the code receives plain values
(window sizes, timeouts, status-code sets) instead of calling os.getenv().

Usage:
    from galt.utils.config import get_config

    config = get_config()
    print(config.primary.model)
    print(config.failover.cooldown_seconds)
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from galt.utils.logger import Logger

logger = Logger("Config")

# Gemini serves an OpenAI-compatible chat completions API
GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

# Statuses that trip the breaker: quota, availability and auth failures
# from the primary, plus server-side errors
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({400, 403, 404, 429, 500, 503, 504})


def _required(name: str) -> str:
    """
    Get a required environment variable.

    Raises:
        ValueError: If the variable is not set
    """
    value = os.getenv(name)
    if not value:
        raise ValueError(
            f"Missing required environment variable: {name}\n"
            f"Please ensure {name} is set in your .env file."
        )
    return value


def _optional(name: str, default: str) -> str:
    return os.getenv(name, default)


def _optional_int(name: str, default: int) -> int:
    """Get an optional integer, falling back to the default when invalid."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{name} is not a valid integer, using default: {default}")
        return default


def _optional_float(name: str, default: float) -> float:
    """Get an optional float, falling back to the default when invalid."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"{name} is not a valid number, using default: {default}")
        return default


def _optional_bool(name: str, default: bool) -> bool:
    """True if the value is 'true' (case-insensitive)."""
    value = os.getenv(name)
    if not value:
        return default
    return value.lower() == "true"


def parse_status_codes(raw: str | None, default: frozenset[int]) -> frozenset[int]:
    """
    Parse a comma-separated list of HTTP status codes.

    Entries that are not integers are ignored. An empty or fully invalid
    list yields the default set.

    Example:
        parse_status_codes("429, 503,abc", DEFAULT_RETRYABLE_STATUS_CODES)
        # frozenset({429, 503})
    """
    if not raw:
        return default

    codes = set()
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit():
            codes.add(int(part))
        elif part:
            logger.warning(f"Ignoring invalid status code in breaker list: {part!r}")

    return frozenset(codes) if codes else default


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class SlackConfig:
    """Slack API configuration."""
    bot_token: str      # xoxb-... token for bot operations
    app_token: str      # xapp-... token for Socket Mode
    signing_secret: str


@dataclass(frozen=True)
class BackendConfig:
    """One OpenAI-compatible chat completion backend."""
    name: str
    api_key: str
    model: str
    base_url: str | None  # None = the SDK's default (api.openai.com)


@dataclass(frozen=True)
class FailoverConfig:
    """Breaker policy between the primary and secondary backend."""
    cooldown_seconds: float
    retryable_status_codes: frozenset[int]
    model_timeout_seconds: float


@dataclass(frozen=True)
class MemoryConfig:
    """Conversation memory configuration."""
    directory: Path
    recent_window: int          # R: most recent turns always included
    similarity_top_k: int       # K: similarity-retrieved turns
    max_retained_turns: int     # FIFO cap per conversation log
    similarity_timeout_seconds: float
    embedding_model: str
    enable_long_term: bool


@dataclass(frozen=True)
class AgentConfig:
    """Agent loop configuration."""
    second_pass_context: int    # context messages replayed on the final-answer call
    tool_timeout_seconds: float


@dataclass(frozen=True)
class FormatterConfig:
    """Reply segmentation limits."""
    max_segment_size: int
    max_segment_count: int


@dataclass(frozen=True)
class ToolsConfig:
    """Optional tool integrations."""
    tavily_api_key: str | None
    image_model: str


@dataclass(frozen=True)
class PricingConfig:
    """Cost estimates recorded with token and image usage."""
    input_per_million_usd: float
    output_per_million_usd: float
    image_cost_usd: float


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

        config = get_config()
        config.slack.bot_token
        config.failover.retryable_status_codes
        config.memory.recent_window
    """
    slack: SlackConfig
    primary: BackendConfig
    secondary: BackendConfig
    failover: FailoverConfig
    memory: MemoryConfig
    agent: AgentConfig
    formatter: FormatterConfig
    tools: ToolsConfig
    pricing: PricingConfig
    metrics_dir: Path


def load_config() -> Config:
    """
    Load and validate all configuration from the environment.

    Loads .env first, then validates required values and applies
    defaults for the rest.

    Raises:
        ValueError: If required configuration is missing
    """
    load_dotenv()

    # config.py lives in galt/utils/; memory/ and data/ live at the project root
    project_root = Path(__file__).parent.parent.parent

    return Config(
        slack=SlackConfig(
            bot_token=_required("SLACK_BOT_TOKEN"),
            app_token=_required("SLACK_APP_TOKEN"),
            signing_secret=_required("SLACK_SIGNING_SECRET"),
        ),
        primary=BackendConfig(
            name="primary",
            api_key=_required("PRIMARY_API_KEY"),
            model=_optional("PRIMARY_MODEL", "gemini-1.5-flash"),
            base_url=_optional("PRIMARY_BASE_URL", GEMINI_OPENAI_BASE_URL),
        ),
        secondary=BackendConfig(
            name="secondary",
            api_key=_required("OPENAI_API_KEY"),
            model=_optional("OPENAI_MODEL", "gpt-4o-mini"),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
        ),
        failover=FailoverConfig(
            cooldown_seconds=_optional_float("BREAKER_COOLDOWN_SECONDS", 300.0),
            retryable_status_codes=parse_status_codes(
                os.getenv("BREAKER_STATUS_CODES"), DEFAULT_RETRYABLE_STATUS_CODES
            ),
            model_timeout_seconds=_optional_float("MODEL_TIMEOUT_SECONDS", 60.0),
        ),
        memory=MemoryConfig(
            directory=project_root / _optional("MEMORY_DIR", "memory"),
            recent_window=_optional_int("RECENT_CONTEXT_LIMIT", 15),
            similarity_top_k=_optional_int("SIMILARITY_TOP_K", 10),
            max_retained_turns=_optional_int("MAX_RETAINED_TURNS", 50),
            similarity_timeout_seconds=_optional_float("SIMILARITY_TIMEOUT_SECONDS", 10.0),
            embedding_model=_optional("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            enable_long_term=_optional_bool("ENABLE_LONG_TERM_MEMORY", True),
        ),
        agent=AgentConfig(
            second_pass_context=_optional_int("SECOND_PASS_CONTEXT", 6),
            tool_timeout_seconds=_optional_float("TOOL_TIMEOUT_SECONDS", 60.0),
        ),
        formatter=FormatterConfig(
            max_segment_size=_optional_int("MAX_SEGMENT_SIZE", 4096),
            max_segment_count=_optional_int("MAX_SEGMENT_COUNT", 10),
        ),
        tools=ToolsConfig(
            tavily_api_key=os.getenv("TAVILY_API_KEY") or None,
            image_model=_optional("IMAGE_MODEL", "gpt-image-1"),
        ),
        pricing=PricingConfig(
            input_per_million_usd=_optional_float("PRICING_INPUT_PER_MILLION_USD", 0.25),
            output_per_million_usd=_optional_float("PRICING_OUTPUT_PER_MILLION_USD", 2.0),
            image_cost_usd=_optional_float("IMAGE_COST_USD", 0.04),
        ),
        metrics_dir=project_root / _optional("METRICS_DIR", "data"),
    )


# ==============================================================================
# Singleton
# ==============================================================================

_config_instance: Config | None = None


def get_config() -> Config:
    """
    Get the process-wide configuration, loading it on first access.

    Returns:
        Config: The application configuration
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None
