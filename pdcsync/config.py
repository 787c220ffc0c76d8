"""
config.py - Configuration Management
=====================================
This module handles loading configuration from environment variables and
setting up logging. It reads settings from a .env file and makes them
available to the rest of the application. Command-line flags override
anything loaded here (see cli.py).

Environment Variables Used:
---------------------------
- DS_PDC_API_BASE_URL       : Base URL of the PDC API (e.g., "https://api.pdc.example.org")
- DS_BEARER_TOKEN           : (Optional) A pre-generated PDC access token. If provided, skips OIDC.
- DS_OIDC_BASE_URL          : (Optional) OpenID Connect authority base URL
- DS_OIDC_CLIENT_ID         : (Optional) OpenID Connect client ID
- DS_OIDC_CLIENT_SECRET     : (Optional) OpenID Connect client secret
- DS_CANDID_API_KEY         : (Optional) Candid Premier API subscription key
- DS_CHARITY_NAVIGATOR_API_KEY : (Optional) Charity Navigator GraphQL API key
- DS_TIMEOUT_SEC            : (Optional) Request timeout in seconds (default: 60)
- DS_CANDID_DELAY_SEC       : (Optional) Pause after each Candid call in update-all (default: 6)
- DS_MAX_WORKERS            : (Optional) Cap on concurrent row uploads (default: one per row)
- DS_LOG_LEVEL              : (Optional) Logging level name (default: INFO)

Example .env file:
------------------
DS_PDC_API_BASE_URL=https://api.pdc.example.org
DS_OIDC_BASE_URL=https://auth.example.org/realms/pdc
DS_OIDC_CLIENT_ID=pdc-sync
DS_OIDC_CLIENT_SECRET=...
"""

from dataclasses import dataclass, field
import logging
import os
import time
from pathlib import Path
from dotenv import load_dotenv

from .errors import ConfigurationError


ENV_PREFIX = "DS_"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# RATE LIMIT POLICY
# =============================================================================

@dataclass(frozen=True)
class FixedDelay:
    """
    Sleep a constant number of seconds between calls.

    Candid's subscription allows 10 calls per minute, so update-all waits
    6 seconds after every EIN. Not adaptive, no backoff.
    """

    seconds: float = 6.0

    def wait(self):
        if self.seconds > 0:
            time.sleep(self.seconds)


# =============================================================================
# SETTINGS DATACLASS
# =============================================================================

@dataclass
class Settings:
    """Container for all application configuration values."""

    # The PDC API, required by every command that reads or writes the PDC
    pdc_api_base_url: str | None = None

    # Pre-generated token (if provided, skips the OIDC grant)
    bearer_token: str | None = None

    # OIDC client credentials
    oidc_base_url: str | None = None
    oidc_client_id: str | None = None
    oidc_client_secret: str | None = None

    # Provider keys
    candid_api_key: str | None = None
    charity_navigator_api_key: str | None = None

    timeout_sec: int = 60

    # None means "one worker per row", i.e. every row is in flight at once
    max_workers: int | None = None

    candid_delay: FixedDelay = field(default_factory=FixedDelay)

    log_level: str = "INFO"

    def require(self, *names: str) -> None:
        """Raise ConfigurationError naming every missing attribute."""
        missing = [n for n in names if not getattr(self, n)]
        if missing:
            flags = ", ".join("--" + n.replace("_", "-") for n in missing)
            envs = ", ".join(ENV_PREFIX + n.upper() for n in missing)
            raise ConfigurationError(
                f"Missing required setting(s): {flags}. "
                f"Pass them on the command line or set {envs} in your .env file."
            )

    def masked(self) -> dict:
        """Settings as a dict with secrets hidden, for show-args."""
        secrets = {"bearer_token", "oidc_client_secret", "candid_api_key",
                   "charity_navigator_api_key"}
        out = {}
        for name, value in vars(self).items():
            if name in secrets and value:
                value = value[:4] + "..."
            elif isinstance(value, FixedDelay):
                value = value.seconds
            out[name] = value
        return out


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _clean(v: str | None) -> str | None:
    """
    Clean and normalize an environment variable value.

    Examples:
        _clean('  hello  ')     -> 'hello'
        _clean('"quoted"')      -> 'quoted'
        _clean('')              -> None
        _clean(None)            -> None
    """
    if v is None:
        return None

    v = v.strip()

    if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
        v = v[1:-1]

    return v if v else None


def _env(name: str) -> str | None:
    return _clean(os.getenv(ENV_PREFIX + name))


def _int_env(name: str, default: int | None) -> int | None:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")


def normalize_base_url(url: str | None) -> str | None:
    """Add a scheme if there is none and drop the trailing slash."""
    if not url:
        return url
    if not url.startswith("http"):
        url = "https://" + url
    return url.rstrip("/")


# =============================================================================
# MAIN CONFIGURATION LOADER
# =============================================================================

def load_settings() -> Settings:
    """
    Load application configuration from environment variables.

    The .env file in the current directory is read first, then the one in
    the project root; values already present in the environment win.
    Nothing is validated for presence here because each command needs a
    different subset; commands call Settings.require().
    """
    load_dotenv(dotenv_path=Path.cwd() / ".env")
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")

    delay = _env("CANDID_DELAY_SEC")
    try:
        candid_delay = FixedDelay(float(delay)) if delay is not None else FixedDelay()
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}CANDID_DELAY_SEC must be a number, got {delay!r}")

    return Settings(
        pdc_api_base_url=normalize_base_url(_env("PDC_API_BASE_URL")),
        bearer_token=_env("BEARER_TOKEN"),
        oidc_base_url=normalize_base_url(_env("OIDC_BASE_URL")),
        oidc_client_id=_env("OIDC_CLIENT_ID"),
        oidc_client_secret=_env("OIDC_CLIENT_SECRET"),
        candid_api_key=_env("CANDID_API_KEY"),
        charity_navigator_api_key=_env("CHARITY_NAVIGATOR_API_KEY"),
        timeout_sec=_int_env("TIMEOUT_SEC", 60),
        max_workers=_int_env("MAX_WORKERS", None),
        candid_delay=candid_delay,
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
    )


# =============================================================================
# LOGGING
# =============================================================================

def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the whole CLI run."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    # requests' connection pool chatter drowns out our own debug lines
    logging.getLogger("urllib3").setLevel(logging.WARNING)
