"""
Ledger configuration, loaded from a YAML file.

    owner: platform-owner
    platform_fee_percentage: 5
    event_log_path: .streampay/events
    key_path: .streampay/keys/ledger.pem

Only owner is required. Leave event_log_path empty (null) to keep the
event log in memory.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from streampay.core.exceptions import ConfigError, StreamPayError
from streampay.settlement.params import DEFAULT_PLATFORM_FEE, validate_fee_percentage


DEFAULT_EVENT_LOG_PATH = ".streampay/events"
DEFAULT_KEY_PATH       = ".streampay/keys/ledger.pem"

_KNOWN_KEYS = {"owner", "platform_fee_percentage", "event_log_path", "key_path"}


@dataclass
class LedgerConfig:
    """Settings needed to assemble a StreamPayService."""
    owner: str
    platform_fee_percentage: int = DEFAULT_PLATFORM_FEE
    event_log_path: Optional[Path] = Path(DEFAULT_EVENT_LOG_PATH)
    key_path: Optional[Path] = Path(DEFAULT_KEY_PATH)

    @classmethod
    def from_dict(cls, data: dict) -> "LedgerConfig":
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        unknown = set(data) - _KNOWN_KEYS
        if unknown:
            raise ConfigError("Unknown configuration keys", {"keys": sorted(unknown)})

        owner = data.get("owner")
        if not isinstance(owner, str) or not owner.strip():
            raise ConfigError("Configuration requires a non-empty 'owner'")

        fee = data.get("platform_fee_percentage", DEFAULT_PLATFORM_FEE)
        try:
            validate_fee_percentage(fee)
        except StreamPayError as exc:
            raise ConfigError(f"Invalid platform_fee_percentage: {exc}") from exc

        log_path = data.get("event_log_path", DEFAULT_EVENT_LOG_PATH)
        key_path = data.get("key_path", DEFAULT_KEY_PATH)

        return cls(
            owner=owner,
            platform_fee_percentage=fee,
            event_log_path=Path(log_path) if log_path else None,
            key_path=Path(key_path) if key_path else None,
        )

    @classmethod
    def from_yaml(cls, config_file: Path) -> "LedgerConfig":
        """Load configuration from a YAML file."""
        config_file = Path(config_file)
        if not config_file.exists():
            raise ConfigError("Configuration file not found", {"path": config_file})
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_file}: {exc}") from exc
        return cls.from_dict(data or {})
