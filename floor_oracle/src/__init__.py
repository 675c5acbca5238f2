"""
NFT Floor-Price Oracle - Multi-Feeder Aggregation Module

This module provides a trusted floor price per NFT collection:
- FloorPriceAggregator: Asset registry, price submission and twap reads
- PriceAggregator: Windowed upper-median with a deviation band
- FeederRegistry: Feeder membership and per-feeder submission counters
- AccessControl: Admin, updater and feeder roles
- PriceRouter: Consumer-side price lookup with a fallback oracle
"""

from .AccessControl import (
    DEFAULT_ADMIN_ROLE,
    FEEDER_ROLE,
    UPDATER_ROLE,
    AccessControl,
    PermissionChecker,
)
from .AssetState import AssetState, PriceObservation
from .errors import (
    AssetNotRegistered,
    FeedPaused,
    InvalidPriceDeviation,
    OracleError,
    PriceMustBePositive,
    PriceUnavailable,
    Unauthorized,
)
from .FeederRegistry import FeederRegistry, FeederStatus
from .FloorPriceAggregator import FloorPriceAggregator
from .OracleConfig import OracleConfig
from .PriceAggregator import AggregationResult, PriceAggregator
from .PriceRouter import (
    FallbackOracle,
    FloorOracleWrapper,
    PriceRouter,
    PriceSource,
    StaticPriceOracle,
)

__all__ = [
    "AccessControl",
    "AggregationResult",
    "AssetNotRegistered",
    "AssetState",
    "DEFAULT_ADMIN_ROLE",
    "FEEDER_ROLE",
    "FallbackOracle",
    "FeedPaused",
    "FeederRegistry",
    "FeederStatus",
    "FloorOracleWrapper",
    "FloorPriceAggregator",
    "InvalidPriceDeviation",
    "OracleConfig",
    "OracleError",
    "PermissionChecker",
    "PriceAggregator",
    "PriceMustBePositive",
    "PriceObservation",
    "PriceRouter",
    "PriceSource",
    "PriceUnavailable",
    "StaticPriceOracle",
    "UPDATER_ROLE",
    "Unauthorized",
]
