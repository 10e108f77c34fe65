"""
Configuration management for crashline.
Supports config.json with environment variable overrides.
All paths are resolved relative to the project root.
"""

import json
import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

# Project root directory (parent of the 'crashline' package)
PROJECT_ROOT = Path(__file__).parent.parent


def get_env(key: str, default: str = None) -> Optional[str]:
    """Get environment variable with optional default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes", "on")


def get_env_int(key: str, default: int = 0) -> int:
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


# ==================== Configuration Models ====================

class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = True
    name: str = "Crashline"
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173"]
    )


class GameConfig(BaseModel):
    """Round timing and money seeds."""
    countdown_seconds: int = Field(default=5, ge=1)
    tick_interval_ms: int = Field(default=80, gt=0)
    multiplier_increment: float = Field(default=0.02, gt=0)
    intermission_seconds: float = Field(default=3.0, ge=0)
    initial_delay_seconds: float = Field(default=3.0, ge=0)
    house_seed: float = 100000.0
    house_floor: Optional[float] = None  # None -> house_floor_ratio * house_seed
    house_floor_ratio: float = 0.8
    player_seeds: Dict[str, float] = Field(
        default_factory=lambda: {"User1": 1000.0, "User2": 1000.0}
    )
    history_size: int = Field(default=20, ge=0)

    @field_validator("player_seeds")
    @classmethod
    def seeds_not_negative(cls, seeds: Dict[str, float]) -> Dict[str, float]:
        negative = sorted(player for player, amount in seeds.items() if amount < 0)
        if negative:
            raise ValueError(f"negative starting balance for {', '.join(negative)}")
        return seeds

    def resolved_house_floor(self) -> float:
        if self.house_floor is not None:
            return self.house_floor
        return self.house_seed * self.house_floor_ratio


class RateLimitConfig(BaseModel):
    enabled: bool = True
    game_requests: str = "30/minute"  # bet and cashout
    api_requests: str = "60/minute"   # state reads


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_to_file: bool = False
    formatter: str = "color"
    log_file: str = "data/crashline.log"

    def get_log_path(self) -> Path:
        return PROJECT_ROOT / self.log_file


class AppConfig(BaseModel):
    """Main application configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    game: GameConfig = Field(default_factory=GameConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ==================== Configuration Loading ====================

def load_config(config_path: Path = None) -> AppConfig:
    """
    Load configuration from config.json with environment variable overrides.
    Environment variables take precedence over config.json values.
    """
    config_path = config_path or PROJECT_ROOT / "config.json"

    data = {}
    if config_path.exists():
        with open(config_path, "r") as f:
            data = json.load(f)

    if get_env("SERVER_HOST"):
        data.setdefault("server", {})["host"] = get_env("SERVER_HOST")
    if get_env("SERVER_PORT"):
        data.setdefault("server", {})["port"] = get_env_int("SERVER_PORT", 5000)
    if get_env("DEBUG"):
        data.setdefault("server", {})["debug"] = get_env_bool("DEBUG")

    if get_env("COUNTDOWN_SECONDS"):
        data.setdefault("game", {})["countdown_seconds"] = get_env_int("COUNTDOWN_SECONDS", 5)
    if get_env("TICK_INTERVAL_MS"):
        data.setdefault("game", {})["tick_interval_ms"] = get_env_int("TICK_INTERVAL_MS", 80)
    if get_env("HOUSE_SEED"):
        data.setdefault("game", {})["house_seed"] = get_env_float("HOUSE_SEED", 100000.0)
    if get_env("HOUSE_FLOOR"):
        data.setdefault("game", {})["house_floor"] = get_env_float("HOUSE_FLOOR", 80000.0)

    if get_env("LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = get_env("LOG_LEVEL")
    if get_env("LOG_TO_FILE"):
        data.setdefault("logging", {})["log_to_file"] = get_env_bool("LOG_TO_FILE")
    if get_env("LOG_FORMATTER"):
        data.setdefault("logging", {})["formatter"] = get_env("LOG_FORMATTER")

    if get_env("RATE_LIMIT_ENABLED"):
        data.setdefault("rate_limit", {})["enabled"] = get_env_bool("RATE_LIMIT_ENABLED", True)

    return AppConfig(**data)


# Global config instance
settings = load_config()
