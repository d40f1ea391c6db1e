"""
assetrewards/config.py

Configuration constants and settings for the rewards engine.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


# Fixed-point amounts: 1 coin = 100M base units (8 fractional digits)
COIN = 100_000_000
AMOUNT_DECIMALS = 8
MAX_MONEY = 21_000_000_000 * COIN

# Recipients per transfer transaction
MAX_PAYMENTS_PER_TRANSACTION = 50

# Blocks between scheduling and the payout/snapshot height
FUTURE_BLOCK_HEIGHT_OFFSET = 61

# Ticker that selects the native-currency transfer path
NATIVE_CURRENCY = "EVR"

DEFAULT_STORAGE_DIR = Path.home() / ".assetrewards" / "storage"

ENV_PREFIX = "ASSETREWARDS_"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class RewardsConfig:
    """
    Per-process rewards settings.

    `enabled` is the feature gate. It is decided once at startup and
    handed to the controller; nothing reads it from global state.
    """
    enabled: bool = True
    batch_size: int = MAX_PAYMENTS_PER_TRANSACTION
    height_offset: int = FUTURE_BLOCK_HEIGHT_OFFSET
    native_currency: str = NATIVE_CURRENCY
    storage_dir: Path = field(default_factory=lambda: DEFAULT_STORAGE_DIR)

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.height_offset < 0:
            raise ValueError(f"height_offset must not be negative, got {self.height_offset}")
        self.storage_dir = Path(self.storage_dir)

    def is_native(self, asset_name: str) -> bool:
        """Check whether a funding source names the native currency."""
        return asset_name == self.native_currency

    @classmethod
    def from_env(cls, environ=None) -> "RewardsConfig":
        """
        Build settings from ASSETREWARDS_* environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        if f"{ENV_PREFIX}ENABLED" in env:
            kwargs["enabled"] = _env_bool(env[f"{ENV_PREFIX}ENABLED"])
        if f"{ENV_PREFIX}BATCH_SIZE" in env:
            kwargs["batch_size"] = int(env[f"{ENV_PREFIX}BATCH_SIZE"])
        if f"{ENV_PREFIX}HEIGHT_OFFSET" in env:
            kwargs["height_offset"] = int(env[f"{ENV_PREFIX}HEIGHT_OFFSET"])
        if f"{ENV_PREFIX}NATIVE_CURRENCY" in env:
            kwargs["native_currency"] = env[f"{ENV_PREFIX}NATIVE_CURRENCY"]
        if f"{ENV_PREFIX}STORAGE_DIR" in env:
            kwargs["storage_dir"] = Path(env[f"{ENV_PREFIX}STORAGE_DIR"]).expanduser()

        return cls(**kwargs)
