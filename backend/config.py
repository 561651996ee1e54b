"""
Configuration settings for the Drug Candidate Analyzer
"""
import os
import sys
from pathlib import Path
from typing import Any, List

from dotenv import load_dotenv
from loguru import logger

# Load .env file from the backend directory FIRST before any imports
_backend_dir = Path(__file__).parent
_env_file = _backend_dir / ".env"
if _env_file.exists():
    load_dotenv(_env_file, override=True)

LIVE = "live"
MOCK = "mock"

# PubChem usage policy: no more than 5 requests per second
MIN_PUBCHEM_DELAY_SECONDS = 0.2


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_source(name: str, live_available: bool) -> str:
    """Read a live/mock switch, defaulting to live only when it can work."""
    value = os.getenv(name, "").strip().lower()
    if value in (LIVE, MOCK):
        return value
    return LIVE if live_available else MOCK


class Settings:
    """Application settings loaded from environment variables"""

    def __init__(self):
        # API Keys
        self.anthropic_api_key: str = os.getenv("ANTHROPIC_API_KEY", "")
        has_key = bool(self.anthropic_api_key)

        # Database URLs
        self.pubchem_base_url: str = os.getenv(
            "PUBCHEM_BASE_URL", "https://pubchem.ncbi.nlm.nih.gov/rest/pug"
        )
        self.chembl_base_url: str = os.getenv(
            "CHEMBL_BASE_URL", "https://www.ebi.ac.uk/chembl/api/data"
        )
        self.molprop_api_url: str = os.getenv("MOLPROP_API_URL", "")

        # Source selection (live remote call or deterministic offline data)
        self.structure_source: str = _env_source("STRUCTURE_SOURCE", True)
        self.bioactivity_source: str = _env_source("BIOACTIVITY_SOURCE", True)
        self.property_source: str = _env_source("PROPERTY_SOURCE", bool(self.molprop_api_url))
        self.mechanism_source: str = _env_source("MECHANISM_SOURCE", has_key)

        # Synthesis settings
        backend = os.getenv("SYNTHESIS_BACKEND", "").strip().lower()
        self.synthesis_backend: str = backend if backend in ("claude", "rules") else (
            "claude" if has_key else "rules"
        )
        mode = os.getenv("SYNTHESIS_MODE", "prefetched").strip().lower()
        self.synthesis_mode: str = mode if mode in ("prefetched", "tool_use") else "prefetched"
        self.max_tool_rounds: int = int(os.getenv("MAX_TOOL_ROUNDS", "6"))

        # Claude settings
        self.claude_model: str = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514")
        self.claude_max_tokens: int = int(os.getenv("CLAUDE_MAX_TOKENS", "4096"))

        # Transport settings
        self.http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
        self.http_max_attempts: int = max(1, int(os.getenv("HTTP_MAX_ATTEMPTS", "1")))
        self.pubchem_request_delay: float = max(
            MIN_PUBCHEM_DELAY_SECONDS,
            float(os.getenv("PUBCHEM_REQUEST_DELAY_SECONDS", str(MIN_PUBCHEM_DELAY_SECONDS))),
        )

        # Lookup cache
        self.lookup_cache_enabled: bool = _env_bool("LOOKUP_CACHE_ENABLED", False)
        self.lookup_cache_ttl: int = int(os.getenv("LOOKUP_CACHE_TTL_SECONDS", "3600"))
        self.lookup_cache_max_entries: int = int(os.getenv("LOOKUP_CACHE_MAX_ENTRIES", "1000"))

        # API settings
        self.max_tracked_runs: int = int(os.getenv("MAX_TRACKED_RUNS", "200"))
        self.allowed_origins: List[str] = os.getenv("ALLOWED_ORIGINS", "*").split(",")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def from_overrides(cls, **overrides: Any) -> "Settings":
        """Build settings from the environment, then apply explicit overrides."""
        instance = cls()
        for key, value in overrides.items():
            if not hasattr(instance, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(instance, key, value)
        if instance.pubchem_request_delay < MIN_PUBCHEM_DELAY_SECONDS:
            instance.pubchem_request_delay = MIN_PUBCHEM_DELAY_SECONDS
        return instance


def configure_logging(level: str) -> None:
    """Send loguru output to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=level)


settings = Settings()
