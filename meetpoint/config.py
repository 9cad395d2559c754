"""
Run configuration.

A PipelineConfig is built once (CLI arguments layered over environment
variables) and handed to every collaborator that needs a setting. Nothing
else in the package reads os.environ, apart from the console log level.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

DEFAULT_REGISTRY_PATH = Path("places.json")
DEFAULT_CENTER_PATH = Path("center.json")
DEFAULT_REGION = "berlin"
DEFAULT_FETCH_CONCURRENCY = 4
DEFAULT_GEOCODE_CONCURRENCY = 10
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 2.0
DEFAULT_HTTP_TIMEOUT = 30.0


def _as_bool(val: Optional[str], default: bool = False) -> bool:
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PipelineConfig:
    registry_path: Path = DEFAULT_REGISTRY_PATH
    center_path: Optional[Path] = DEFAULT_CENTER_PATH
    sources: List[str] = field(default_factory=list)
    region: str = DEFAULT_REGION
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    geocode_concurrency: int = DEFAULT_GEOCODE_CONCURRENCY
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    exclude_closed: bool = False
    api_key: Optional[str] = None

    def __post_init__(self) -> None:
        if self.fetch_concurrency < 1:
            raise ValueError("fetch_concurrency must be >= 1")
        if self.geocode_concurrency < 1:
            raise ValueError("geocode_concurrency must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "PipelineConfig":
        """
        Build a config from environment variables, then apply overrides.

        Overrides whose value is None are ignored so argparse defaults of
        None fall through to the environment.

        Environment:
            GOOGLE_API_KEY (or API_KEY): geocoding API key
            MEETPOINT_REGION: region hint for forward geocoding
            MEETPOINT_EXCLUDE_CLOSED: skip closed places in the center
        """
        env = os.environ if environ is None else environ
        values = {
            "api_key": env.get("GOOGLE_API_KEY") or env.get("API_KEY") or None,
            "region": env.get("MEETPOINT_REGION") or DEFAULT_REGION,
            "exclude_closed": _as_bool(env.get("MEETPOINT_EXCLUDE_CLOSED"), False),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def log_level_from_env(environ: Optional[Mapping[str, str]] = None) -> str:
    """Console log level from MEETPOINT_LOG_LEVEL, INFO if unset."""
    env = os.environ if environ is None else environ
    return (env.get("MEETPOINT_LOG_LEVEL") or "INFO").upper()
