"""Per-asset oracle state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable


@dataclass(frozen=True)
class PriceObservation:
    """A single accepted feeder submission.

    :ivar feeder: Identity that submitted the price.
    :ivar price: Submitted price in the smallest unit (e.g. wei).
    :ivar timestamp: Submission time in seconds.
    """

    feeder: Hashable
    price: int
    timestamp: int


@dataclass
class AssetState:
    """State kept for one registered asset.

    :ivar observations: Live observations in arrival order.
    :ivar twap: Last aggregated or admin-set price, 0 if never set.
    :ivar paused: True while writes are rejected.
    :ivar last_updated: Timestamp of the last twap change, 0 if never set.
    """

    observations: list[PriceObservation] = field(default_factory=list)
    twap: int = 0
    paused: bool = False
    last_updated: int = 0
