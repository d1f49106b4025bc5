# Vaultboard - Configuration
#
# Settings come from the environment (optionally seeded from a .env file)
# and may be overridden by command-line flags.

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_AUDIT_DIR = "./audit_logs"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for a Vaultboard session."""

    rpc_url: str = DEFAULT_RPC_URL
    request_timeout: float = DEFAULT_TIMEOUT_SEC
    max_retries: int = DEFAULT_MAX_RETRIES
    audit_log_dir: Path = Path(DEFAULT_AUDIT_DIR)

    def with_overrides(self, **overrides) -> "Settings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def _env_number(name: str, default: Union[int, float], cast) -> Union[int, float]:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """Build Settings from the environment.

    Values already present in the process environment win over the
    .env file.
    """
    load_dotenv(dotenv_path=env_file, override=False)

    return Settings(
        rpc_url=(os.environ.get("VAULTBOARD_RPC_URL", "") or DEFAULT_RPC_URL).rstrip("/"),
        request_timeout=_env_number("VAULTBOARD_TIMEOUT", DEFAULT_TIMEOUT_SEC, float),
        max_retries=_env_number("VAULTBOARD_MAX_RETRIES", DEFAULT_MAX_RETRIES, int),
        audit_log_dir=Path(os.environ.get("VAULTBOARD_AUDIT_DIR", "") or DEFAULT_AUDIT_DIR),
    )
