"""Credential configuration for xanosync.

Credentials are read from environment variables first and then from a
``KEY=value`` file at ``~/.config/xanosync/config``.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "XANO_ACCESS_TOKEN"
ORIGIN_ENV_VAR = "XANO_INSTANCE_ORIGIN"

_TOKEN_KEY = "XANO_ACCESS_TOKEN"
_ORIGIN_KEY = "XANO_INSTANCE_ORIGIN"


class Config:
    """Access token and instance origin used by the API client."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file. Defaults to
                ~/.config/xanosync/
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "xanosync"
        self.config_dir = config_dir
        self.config_file = config_dir / "config"

    def _read_file(self) -> dict[str, str]:
        """Read ``KEY=value`` pairs from the config file."""
        if not self.config_file.exists():
            return {}

        values: dict[str, str] = {}
        try:
            for line in self.config_file.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, _, value = line.partition("=")
                values[key.strip()] = value.strip().strip('"')
        except OSError as e:
            logger.warning(f"Failed to read config file {self.config_file}: {e}")
        return values

    @property
    def access_token(self) -> Optional[str]:
        """Access token from the environment or the config file."""
        return os.environ.get(TOKEN_ENV_VAR) or self._read_file().get(_TOKEN_KEY)

    @property
    def instance_origin(self) -> Optional[str]:
        """Instance origin (e.g. https://x1.xano.io) without trailing slash."""
        origin = os.environ.get(ORIGIN_ENV_VAR) or self._read_file().get(_ORIGIN_KEY)
        return origin.rstrip("/") if origin else None

    def is_configured(self) -> bool:
        """Check whether both token and origin are available."""
        return bool(self.access_token and self.instance_origin)

    def save_credentials(self, access_token: str, instance_origin: str) -> None:
        """Write credentials to the config file.

        The file is created with owner-only permissions.

        Args:
            access_token: Metadata API access token
            instance_origin: Instance origin URL
        """
        self.config_dir.mkdir(parents=True, exist_ok=True)
        content = (
            f"{_TOKEN_KEY}={access_token}\n"
            f"{_ORIGIN_KEY}={instance_origin.rstrip('/')}\n"
        )
        self.config_file.write_text(content, encoding="utf-8")
        self.config_file.chmod(0o600)
        logger.debug(f"Saved credentials to {self.config_file}")

    def get_config_path(self) -> Path:
        """Return the config file path."""
        return self.config_file


config = Config()
