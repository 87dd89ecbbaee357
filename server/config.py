"""
Centralized configuration for the card game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.timers.PHASE1_REVEAL)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class TimerSettings:
    """Durations of the deferred game transitions, in seconds."""
    PHASE1_REVEAL: float = 10.0   # memorization window after the deal
    ABILITY_PEEK: float = 5.0     # how long an 8 / 6 peek stays visible


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Built client bundle, served at / when present
    STATIC_DIR: str = "frontend/dist"
    CORS_ORIGINS: list[str] = field(default_factory=lambda: ["*"])

    timers: TimerSettings = field(default_factory=TimerSettings)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        origins_str = get_env("CORS_ORIGINS", "*")
        origins = [o.strip() for o in origins_str.split(",") if o.strip()]

        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 3001),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            STATIC_DIR=get_env("STATIC_DIR", "frontend/dist"),
            CORS_ORIGINS=origins or ["*"],
            timers=TimerSettings(
                PHASE1_REVEAL=get_env_float("PHASE1_REVEAL_SECONDS", 10.0),
                ABILITY_PEEK=get_env_float("ABILITY_PEEK_SECONDS", 5.0),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
