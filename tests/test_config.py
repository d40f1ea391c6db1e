"""
assetrewards/tests/test_config.py

Tests for RewardsConfig.
"""

import pytest
from pathlib import Path

from assetrewards.config import (
    FUTURE_BLOCK_HEIGHT_OFFSET,
    MAX_PAYMENTS_PER_TRANSACTION,
    NATIVE_CURRENCY,
    RewardsConfig,
)


class TestRewardsConfig:

    def test_defaults(self):
        config = RewardsConfig()
        assert config.enabled is True
        assert config.batch_size == MAX_PAYMENTS_PER_TRANSACTION == 50
        assert config.height_offset == FUTURE_BLOCK_HEIGHT_OFFSET == 61
        assert config.native_currency == NATIVE_CURRENCY

    def test_is_native(self):
        config = RewardsConfig(native_currency="RVN")
        assert config.is_native("RVN")
        assert not config.is_native("TOKEN")

    @pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"height_offset": -1}])
    def test_validation(self, kwargs):
        with pytest.raises(ValueError):
            RewardsConfig(**kwargs)

    def test_from_env(self):
        config = RewardsConfig.from_env({
            "ASSETREWARDS_ENABLED": "false",
            "ASSETREWARDS_BATCH_SIZE": "10",
            "ASSETREWARDS_HEIGHT_OFFSET": "5",
            "ASSETREWARDS_NATIVE_CURRENCY": "RVN",
            "ASSETREWARDS_STORAGE_DIR": "/tmp/rewards",
        })
        assert config.enabled is False
        assert config.batch_size == 10
        assert config.height_offset == 5
        assert config.native_currency == "RVN"
        assert config.storage_dir == Path("/tmp/rewards")

    def test_from_env_defaults(self):
        assert RewardsConfig.from_env({}) == RewardsConfig()
