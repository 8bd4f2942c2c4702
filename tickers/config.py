"""
Configuration for the crypto ticker bots.

Tracked assets are compiled in. Everything that varies per deployment
(bot tokens, CoinGecko key, guild id, cadence) comes from the environment,
optionally seeded from a .env file.

Environment:
  ATOM_CLIENT, BITCOIN_CLIENT, ETH_CLIENT   bot tokens (required)
  CG_API                                    CoinGecko demo API key
  TICKER_GUILD_ID                           guild whose nicknames are updated
  TICKER_UPDATE_INTERVAL                    seconds between cycles
  TICKER_READY_POLL                         readiness poll period (seconds)
  TICKER_LOG_LEVEL                          DEBUG / INFO / WARNING ...
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedAsset:
    """One tracked asset and the bot that renders it."""
    key: str          # internal key ("atom", "btc", "eth")
    coin_id: str      # CoinGecko id
    label: str        # nickname prefix
    token_env: str    # env var holding the bot token


# =============================================================================
# Tracked assets
# =============================================================================
# Order here is the fan-out order of every cycle.
TRACKED_ASSETS: List[TrackedAsset] = [
    TrackedAsset(key="atom", coin_id="cosmos", label="Atom", token_env="ATOM_CLIENT"),
    TrackedAsset(key="btc", coin_id="bitcoin", label="Bitcoin", token_env="BITCOIN_CLIENT"),
    TrackedAsset(key="eth", coin_id="ethereum", label="Ethereum", token_env="ETH_CLIENT"),
]

DEFAULT_GUILD_ID = 1049783263956324462

# Cadence (seconds)
DEFAULT_UPDATE_INTERVAL = 300.0
MIN_UPDATE_INTERVAL = 10.0
DEFAULT_READY_POLL = 1.0

DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

API_KEY_ENV = "CG_API"
GUILD_ID_ENV = "TICKER_GUILD_ID"
UPDATE_INTERVAL_ENV = "TICKER_UPDATE_INTERVAL"
READY_POLL_ENV = "TICKER_READY_POLL"
LOG_LEVEL_ENV = "TICKER_LOG_LEVEL"


class ConfigError(ValueError):
    """Raised when required settings are missing or unusable."""


@dataclass(frozen=True)
class Settings:
    tokens: Dict[str, str]            # asset key -> bot token
    api_key: Optional[str] = None
    guild_id: int = DEFAULT_GUILD_ID
    update_interval: float = DEFAULT_UPDATE_INTERVAL
    ready_poll_interval: float = DEFAULT_READY_POLL
    log_level: str = DEFAULT_LOG_LEVEL
    assets: List[TrackedAsset] = field(default_factory=lambda: list(TRACKED_ASSETS))


def _get_float(env: Mapping[str, str], name: str, default: float, *, min_value: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default
    return max(min_value, value)


def _get_guild_id(env: Mapping[str, str]) -> int:
    raw = env.get(GUILD_ID_ENV)
    if raw is None or not raw.strip():
        return DEFAULT_GUILD_ID
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{GUILD_ID_ENV} must be a numeric id, got {raw!r}") from exc


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    env_file: Optional[str] = None,
) -> Settings:
    """
    Build Settings from the environment.

    When `env` is None the process environment is used, after loading
    `env_file` (or ./.env) with python-dotenv. Variables already set in the
    environment take precedence over the file.
    """
    if env is None:
        load_dotenv(dotenv_path=env_file, override=False)
        env = os.environ

    tokens: Dict[str, str] = {}
    missing: List[str] = []
    for asset in TRACKED_ASSETS:
        token = (env.get(asset.token_env) or "").strip()
        if token:
            tokens[asset.key] = token
        else:
            missing.append(asset.token_env)
    if missing:
        raise ConfigError(f"Missing bot token(s): {', '.join(missing)}")

    api_key = (env.get(API_KEY_ENV) or "").strip() or None
    if api_key is None:
        logger.warning("%s not set, CoinGecko requests will be unauthenticated", API_KEY_ENV)

    log_level = (env.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(
            f"{LOG_LEVEL_ENV} must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
        )

    return Settings(
        tokens=tokens,
        api_key=api_key,
        guild_id=_get_guild_id(env),
        update_interval=_get_float(
            env, UPDATE_INTERVAL_ENV, DEFAULT_UPDATE_INTERVAL, min_value=MIN_UPDATE_INTERVAL
        ),
        ready_poll_interval=_get_float(env, READY_POLL_ENV, DEFAULT_READY_POLL, min_value=0.1),
        log_level=log_level,
    )
