"""
assetrewards/assets.py

Fixed-point amounts and asset-name rules.

Amounts are integers in base units (8 fractional digits). Asset names
follow the Ravencoin-family naming scheme:

    ROOT            STOCK1
    SUB             STOCK1/CLASS_A
    UNIQUE          STOCK1#SERIAL42
    OWNER           STOCK1!
    MSGCHANNEL      STOCK1~NEWS
    QUALIFIER       #KYC
    RESTRICTED      $STOCK1
"""

import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union

from .config import AMOUNT_DECIMALS, COIN, MAX_MONEY
from .errors import InvalidParameterError


MAX_NAME_LENGTH = 32
MIN_ROOT_LENGTH = 3
MAX_ROOT_LENGTH = 30

RESERVED_NAMES = {"RVN", "RAVEN", "RAVENCOIN", "EVR", "EVRMORE"}

_ROOT_RE = re.compile(r"^[A-Z0-9._]+$")
_SUB_RE = re.compile(r"^[A-Z0-9._]+$")
_UNIQUE_TAG_RE = re.compile(r"^[-A-Za-z0-9@$%&*()\[\]{}_.?:]+$")
_CHANNEL_RE = re.compile(r"^[A-Za-z0-9_]+$")
_PUNCTUATION = "._"


class AssetType(Enum):
    ROOT = "root"
    SUB = "sub"
    UNIQUE = "unique"
    OWNER = "owner"
    MSGCHANNEL = "msgchannel"
    QUALIFIER = "qualifier"
    RESTRICTED = "restricted"


# Asset types that can neither fund nor receive a reward
NON_REWARDABLE_TYPES = {AssetType.UNIQUE, AssetType.OWNER, AssetType.MSGCHANNEL}


# ============================================================================
# AMOUNTS
# ============================================================================

def parse_amount(value: Union[int, float, str, Decimal], is_native: bool = False) -> int:
    """
    Parse a user-supplied amount into base units.

    Accepts numbers or numeric strings with at most 8 fractional digits.

    Args:
        value: Amount in whole units (e.g. 1000 or "12.5")
        is_native: Enforce the native-currency money range

    Returns:
        Amount in base units

    Raises:
        InvalidParameterError: If the amount is malformed or out of range
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise InvalidParameterError("Amount is not a number or string")

    try:
        # str() first so floats parse as written, not as their binary value
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidParameterError(f"Invalid amount: {value}")

    if not amount.is_finite():
        raise InvalidParameterError(f"Invalid amount: {value}")

    units = amount * COIN
    if units != units.to_integral_value():
        raise InvalidParameterError(
            f"Invalid amount: {value} has more than {AMOUNT_DECIMALS} decimal places"
        )
    units = int(units)

    if is_native and not 0 <= units <= MAX_MONEY:
        raise InvalidParameterError(f"Amount out of range: {units}")

    return units


def format_amount(units: int) -> str:
    """Render base units as a fixed-point string, e.g. 150000000 -> '1.50000000'."""
    sign = "-" if units < 0 else ""
    whole, frac = divmod(abs(units), COIN)
    return f"{sign}{whole}.{frac:0{AMOUNT_DECIMALS}d}"


def unit_step(units: int) -> int:
    """Smallest transferable quantity in base units for an asset with `units` decimals."""
    if not 0 <= units <= AMOUNT_DECIMALS:
        raise InvalidParameterError(f"Asset units must be 0-{AMOUNT_DECIMALS}, got {units}")
    return 10 ** (AMOUNT_DECIMALS - units)


# ============================================================================
# ASSET NAMES
# ============================================================================

def _is_root_name(name: str) -> bool:
    if not MIN_ROOT_LENGTH <= len(name) <= MAX_ROOT_LENGTH:
        return False
    if not _ROOT_RE.match(name):
        return False
    if name[0] in _PUNCTUATION or name[-1] in _PUNCTUATION:
        return False
    if any(a in _PUNCTUATION and b in _PUNCTUATION for a, b in zip(name, name[1:])):
        return False
    return name not in RESERVED_NAMES


def _is_sub_segment(segment: str) -> bool:
    if not segment or not _SUB_RE.match(segment):
        return False
    if segment[0] in _PUNCTUATION or segment[-1] in _PUNCTUATION:
        return False
    return not any(a in _PUNCTUATION and b in _PUNCTUATION for a, b in zip(segment, segment[1:]))


def _is_parent_name(name: str) -> bool:
    root, *subs = name.split("/")
    return _is_root_name(root) and all(_is_sub_segment(s) for s in subs)


def asset_type(name: str) -> Optional[AssetType]:
    """
    Classify an asset name.

    Returns:
        The AssetType, or None if the name is not valid
    """
    if not name or len(name) > MAX_NAME_LENGTH:
        return None

    if name.startswith("#"):
        return AssetType.QUALIFIER if _is_parent_name(name[1:].replace("/#", "/")) else None
    if name.startswith("$"):
        return AssetType.RESTRICTED if _is_root_name(name[1:]) else None
    if name.endswith("!"):
        return AssetType.OWNER if _is_parent_name(name[:-1]) else None
    if "#" in name:
        parent, _, tag = name.partition("#")
        return AssetType.UNIQUE if _is_parent_name(parent) and _UNIQUE_TAG_RE.match(tag) else None
    if "~" in name:
        parent, _, channel = name.partition("~")
        return AssetType.MSGCHANNEL if _is_parent_name(parent) and _CHANNEL_RE.match(channel) else None
    if "/" in name:
        return AssetType.SUB if _is_parent_name(name) else None
    return AssetType.ROOT if _is_root_name(name) else None


def check_rewardable_asset(name: str, role: str) -> AssetType:
    """
    Ensure an asset can take part in a reward.

    Args:
        name: Asset name
        role: 'funding_asset' or 'target_asset', used in the error message

    Raises:
        InvalidParameterError: If the name is invalid or of a refused type
    """
    kind = asset_type(name)
    if kind is None:
        raise InvalidParameterError(f"Invalid {role}: please use a valid {role}")
    if kind in NON_REWARDABLE_TYPES:
        raise InvalidParameterError(
            f"Invalid {role}: OWNER, UNIQUE, MSGCHANNEL assets are not allowed"
        )
    return kind
