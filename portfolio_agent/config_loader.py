"""
Configuration loader for Portfolio Agent.
Merges built-in defaults with a deployment override file and the environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class RoutingConfig(BaseModel):
    guide: str = "gemini/gemini-2.5-flash"
    editor: str = "gemini/gemini-2.5-flash"


class LimitsConfig(BaseModel):
    max_retries: int = Field(default=3, ge=1)
    backoff_min_seconds: float = Field(default=2.0, ge=0)
    backoff_max_seconds: float = Field(default=10.0, ge=0)
    max_correction_attempts: int = Field(default=2, ge=0)
    history_window: int = Field(default=12, ge=1)
    max_tokens_per_session: int = 200_000
    max_dollars_per_session: float = 2.0


class GitHubStorageConfig(BaseModel):
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    path_prefix: str = "data"
    token_env: str = "GITHUB_TOKEN"


class StorageConfig(BaseModel):
    backend: Literal["memory", "local", "github"] = "local"
    data_dir: str = "data"
    read_only: bool = False
    github: GitHubStorageConfig = Field(default_factory=GitHubStorageConfig)


class AuditConfig(BaseModel):
    max_entries: int = Field(default=1000, ge=1)
    stats_window_days: int = Field(default=7, ge=1)
    confirmation_code: str = "CONFIRM_CLEAR_LOGS"


class PortfolioAgentConfig(BaseModel):
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"
_LOCAL_OVERRIDE = Path(".portfolio_agent") / "config.yaml"

_ENV_OVERRIDES = {
    "PORTFOLIO_AGENT_STORAGE_BACKEND": ("storage", "backend"),
    "PORTFOLIO_AGENT_DATA_DIR": ("storage", "data_dir"),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None) -> PortfolioAgentConfig:
    """
    Load config by merging:
      1. Built-in defaults (portfolio_agent/config.yaml)
      2. Override file (explicit path, else ./.portfolio_agent/config.yaml)
      3. Environment variable overrides
    """
    # 1. Built-in defaults
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    # 2. Overrides
    override_path = config_path or _LOCAL_OVERRIDE
    if override_path.exists():
        with open(override_path, "r") as f:
            overrides: dict[str, Any] = yaml.safe_load(f) or {}
        base = _deep_merge(base, overrides)

    # 3. Environment
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            base = _deep_merge(base, {section: {key: value}})

    return PortfolioAgentConfig(**base)


def validate_api_keys() -> dict[str, bool]:
    """Check which API keys are available."""
    return {
        "GEMINI_API_KEY": bool(os.environ.get("GEMINI_API_KEY")),
        "OPENAI_API_KEY": bool(os.environ.get("OPENAI_API_KEY")),
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "GITHUB_TOKEN": bool(os.environ.get("GITHUB_TOKEN")),
    }
