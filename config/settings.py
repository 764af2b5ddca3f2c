"""
Configuration. All settings from env vars, optionally via a .env file.
No YAML. No TOML parsing. CLI flags override a few of these in main.py.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

# Auto-load .env file so you don't need `export $(grep ...)` every time
from dotenv import load_dotenv
load_dotenv()


def _db_path() -> Path | None:
    raw = os.environ.get("FEEDWATCH_DB_PATH", "data/feedwatch.db")
    return Path(raw) if raw else None


@dataclass
class Config:
    # Credential — read from env only, never stored
    github_token: str = os.environ.get("GITHUB_TOKEN", "")

    api_base: str = os.environ.get("FEEDWATCH_API_BASE", "https://api.github.com")
    user_agent: str = "feedwatch/0.1"
    request_timeout: float = float(os.environ.get("FEEDWATCH_REQUEST_TIMEOUT", "15"))

    # Pages followed per poll when catching up. A fresh feed only reads one.
    max_pages: int = int(os.environ.get("FEEDWATCH_MAX_PAGES", "3"))

    # Cursor persistence. Set FEEDWATCH_DB_PATH="" to run without it.
    db_path: Path | None = field(default_factory=_db_path)

    # ── Pacing ──
    # GitHub documents 60s as the events X-Poll-Interval; the server hint wins if larger.
    base_interval: float = float(os.environ.get("FEEDWATCH_POLL_INTERVAL", "60"))
    budget_floor: int = int(os.environ.get("FEEDWATCH_BUDGET_FLOOR", "10"))
    low_budget_multiplier: float = 4.0
    max_backoff: float = float(os.environ.get("FEEDWATCH_MAX_BACKOFF", "900"))

    # ── Retries ──
    transient_base_delay: float = 5.0
    max_transient_retries: int = int(os.environ.get("FEEDWATCH_MAX_RETRIES", "5"))
    rate_limit_base_delay: float = 60.0

    def token_from_env(self, env_name: str | None) -> str:
        """Token from a custom env var, falling back to GITHUB_TOKEN."""
        if env_name:
            return os.environ.get(env_name, "")
        return self.github_token


def load_config() -> Config:
    return Config()
