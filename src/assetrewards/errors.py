"""
assetrewards/errors.py

Exception taxonomy for the rewards engine.
"""


class RewardsError(Exception):
    """Base class for all rewards errors."""
    pass


class NotFoundError(RewardsError):
    """No record exists for the identifier."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class DuplicateIDError(RewardsError):
    """A record with the identifier already exists."""

    def __init__(self, key: str):
        super().__init__(f"Duplicate reward id: {key}")
        self.key = key


class StorageError(RewardsError):
    """A durable write or delete failed. Nothing was changed."""
    pass


class SnapshotUnavailableError(RewardsError):
    """No ownership snapshot exists yet for (asset, height). Retry later."""

    def __init__(self, asset_name: str, height: int):
        super().__init__(f"No ownership snapshot for {asset_name} at height {height}")
        self.asset_name = asset_name
        self.height = height


class TransferRejectedError(RewardsError):
    """A batch transfer could not be built, signed or broadcast."""
    pass


class InvalidDestinationError(RewardsError):
    """A payment destination failed structural validation."""

    def __init__(self, address: str):
        super().__init__(f"Invalid destination address: {address}")
        self.address = address


class InvalidParameterError(RewardsError):
    """A caller-supplied value is malformed or not allowed."""
    pass


class RewardsDisabledError(RewardsError):
    """The rewards feature is switched off for this process."""

    def __init__(self):
        super().__init__(
            "Rewards system is disabled. Start with rewards enabled "
            "(ASSETREWARDS_ENABLED=1 or --enable-rewards) to use it."
        )
