"""
Reactgate - Runtime Configuration

Central configuration for the approval daemon. Values come from an optional
YAML file overlaid by environment variables.

Environment Variables:
  MACAROON_SECRET              - base64 key (32 bytes) sealing tickets and discharges
  SLACK_SIGNING_SECRET         - Slack request signing secret
  SLACK_BOT_TOKEN              - Slack bot token used to post prompts
  REACTGATE_CHANNEL            - channel approval prompts are posted to
  REACTGATE_LOCATION           - third-party location named in tickets
  REACTGATE_APPROVE_REACTIONS  - comma separated reactions counted as approval
  REACTGATE_DEADLINE           - seconds before an unanswered request expires
  REACTGATE_SWEEP_INTERVAL     - seconds between expiry sweeps
  REACTGATE_POLL_CAPACITY      - max outstanding discharge polls
  REACTGATE_MAX_BODY           - max accepted request body (bytes)
  REACTGATE_HOST / REACTGATE_PORT
  REACTGATE_LOG_LEVEL
  REACTGATE_CONFIG             - optional YAML file with the same keys
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional

import yaml

logger = logging.getLogger("reactgate.config")

SECRET_LENGTH = 32

DEFAULT_LOCATION = "https://reactgate.local/ticket"
DEFAULT_APPROVE_REACTIONS = frozenset({"+1", "celeryman", "celebrate", "yes"})

# env var -> config field
ENV_FIELDS = {
    "SLACK_SIGNING_SECRET": "signing_secret",
    "SLACK_BOT_TOKEN": "bot_token",
    "REACTGATE_CHANNEL": "channel",
    "REACTGATE_LOCATION": "location",
    "REACTGATE_APPROVE_REACTIONS": "approve_reactions",
    "REACTGATE_DEADLINE": "deadline_seconds",
    "REACTGATE_SWEEP_INTERVAL": "sweep_interval_seconds",
    "REACTGATE_POLL_CAPACITY": "poll_capacity",
    "REACTGATE_MAX_BODY": "max_body_bytes",
    "REACTGATE_HOST": "host",
    "REACTGATE_PORT": "port",
    "REACTGATE_LOG_LEVEL": "log_level",
}


class ConfigError(Exception):
    """Raised when the daemon cannot start with the given configuration."""


def decode_secret(value: str) -> bytes:
    """Decode a base64 macaroon secret and check its length."""
    if not value:
        raise ConfigError("no MACAROON_SECRET")
    try:
        secret = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigError(f"decode MACAROON_SECRET: {e}") from e
    if len(secret) != SECRET_LENGTH:
        raise ConfigError(f"MACAROON_SECRET should be {SECRET_LENGTH} bytes")
    return secret


def parse_reactions(value: Any) -> FrozenSet[str]:
    """Accept a comma separated string or a YAML list of reaction names."""
    if isinstance(value, str):
        names = value.split(",")
    else:
        names = list(value)
    reactions = frozenset(str(n).strip().strip(":") for n in names if str(n).strip())
    if not reactions:
        raise ConfigError("approve_reactions must name at least one reaction")
    return reactions


@dataclass
class BotConfig:
    """Approval daemon configuration."""

    macaroon_secret: bytes
    signing_secret: str = ""
    bot_token: str = ""
    channel: str = ""
    location: str = DEFAULT_LOCATION
    approve_reactions: FrozenSet[str] = field(
        default_factory=lambda: DEFAULT_APPROVE_REACTIONS
    )

    # Correlation timing
    deadline_seconds: float = 300.0
    sweep_interval_seconds: float = 5.0

    poll_capacity: int = 1000
    max_body_bytes: int = 10000

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    def __post_init__(self):
        if self.deadline_seconds <= 0:
            raise ConfigError("deadline_seconds must be positive")
        if self.sweep_interval_seconds <= 0:
            raise ConfigError("sweep_interval_seconds must be positive")
        if self.poll_capacity < 1:
            raise ConfigError("poll_capacity must be at least 1")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "BotConfig":
        """Build a config from already-merged raw values."""
        raw = dict(values)
        secret = raw.pop("macaroon_secret", "")
        if isinstance(secret, str):
            secret = decode_secret(secret)

        kwargs: Dict[str, Any] = {}
        try:
            for key, value in raw.items():
                if key == "approve_reactions":
                    kwargs[key] = parse_reactions(value)
                elif key in ("deadline_seconds", "sweep_interval_seconds"):
                    kwargs[key] = float(value)
                elif key in ("poll_capacity", "max_body_bytes", "port"):
                    kwargs[key] = int(value)
                elif key in cls.__dataclass_fields__:
                    kwargs[key] = str(value)
                else:
                    logger.warning(f"Ignoring unknown config key: {key}")
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid value for {key}: {e}") from e

        return cls(macaroon_secret=secret, **kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BotConfig":
        """Load configuration from environment variables only."""
        return cls.load(path=None, environ=environ)

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BotConfig":
        """
        Load configuration from a YAML file overlaid by the environment.

        Args:
            path: YAML file; defaults to $REACTGATE_CONFIG when set
            environ: environment mapping (defaults to os.environ)
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        if path is None and env.get("REACTGATE_CONFIG"):
            path = Path(env["REACTGATE_CONFIG"])
        if path is not None:
            values.update(_load_yaml(Path(path)))

        if env.get("MACAROON_SECRET"):
            values["macaroon_secret"] = env["MACAROON_SECRET"]
        for var, key in ENV_FIELDS.items():
            if env.get(var):
                values[key] = env[var]

        return cls.from_mapping(values)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view with secrets redacted."""
        return {
            "channel": self.channel,
            "location": self.location,
            "approve_reactions": sorted(self.approve_reactions),
            "deadline_seconds": self.deadline_seconds,
            "sweep_interval_seconds": self.sweep_interval_seconds,
            "poll_capacity": self.poll_capacity,
            "max_body_bytes": self.max_body_bytes,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "signing_secret_set": bool(self.signing_secret),
            "bot_token_set": bool(self.bot_token),
        }


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Read a YAML config file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return data
