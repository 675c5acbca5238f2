"""PriceAggregator: Windowed median aggregation with a deviation band.

Algorithm:
    1. Evict observations older than ``now - expiration_period``
    2. Return None if fewer than min_count_to_aggregate remain
    3. Sort remaining prices and pick the element at index ``count // 2``
       (the upper-middle element for even counts, never an average)

Submissions are screened separately with :meth:`PriceAggregator.check_deviation`
before they enter the window.

.. code-block:: python

    >>> aggregator = PriceAggregator(OracleConfig(min_count_to_aggregate=2))
    >>> observations = [
    ...     PriceObservation("a", 1, 0),
    ...     PriceObservation("b", 3, 30),
    ... ]
    >>> result = aggregator.aggregate(observations, now=30)
    >>> result.price
    3
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable, TypedDict

from .AssetState import PriceObservation
from .OracleConfig import OracleConfig


class AggregationError(TypedDict, total=False):
    """Error information when aggregation does not produce a price.

    :ivar error: Error type identifier.
    :ivar available: Number of live observations.
    :ivar required: Number of observations needed.
    :ivar expired: Number of observations evicted in this pass.
    """

    error: str
    available: int
    required: int
    expired: int


class AggregationMetadata(TypedDict, total=False):
    """Metadata about a successful aggregation.

    :ivar feeders: Feeders whose observations were in the window.
    :ivar count: Number of observations used.
    :ivar expired: Number of observations evicted in this pass.
    """

    feeders: list[Hashable]
    count: int
    expired: int


@dataclass
class AggregationResult:
    """Result of one aggregation pass.

    :ivar price: Aggregated price, or None if there was not enough data.
    :ivar metadata: Additional information about the pass.
    :ivar observations: Observations still live after eviction.
    """

    price: int | None
    metadata: AggregationMetadata | AggregationError
    observations: list[PriceObservation] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if aggregation produced a price."""
        return self.price is not None

    @property
    def error(self) -> str | None:
        """Get error type if aggregation did not produce a price."""
        if self.price is None:
            return self.metadata.get("error")
        return None


class PriceAggregator:
    """Aggregates feeder observations inside a sliding time window.

    :ivar config: Aggregation parameters in effect.
    """

    def __init__(self, config: OracleConfig | None = None) -> None:
        """Initialize the aggregator.

        :param config: Aggregation parameters (default: ``OracleConfig()``).
        """
        self.config = config or OracleConfig()

    def evict_expired(
        self, observations: list[PriceObservation], now: int
    ) -> tuple[list[PriceObservation], list[PriceObservation]]:
        """Split observations into live and expired ones.

        An observation expires once its timestamp is strictly older than
        ``now - expiration_period``. Arrival order is preserved.

        :param observations: Observations in arrival order.
        :param now: Current time in seconds.
        :returns: Tuple of (live, expired) observation lists.
        """
        cutoff = now - self.config.expiration_period
        live: list[PriceObservation] = []
        expired: list[PriceObservation] = []
        for observation in observations:
            if observation.timestamp < cutoff:
                expired.append(observation)
            else:
                live.append(observation)
        return live, expired

    def aggregate(
        self, observations: list[PriceObservation], *, now: int
    ) -> AggregationResult:
        """Aggregate live observations into a single price.

        :param observations: Observations in arrival order.
        :param now: Current time in seconds, used for eviction.
        :returns: AggregationResult with the picked price and the live
            observations, or None price with error info.

        .. code-block:: python

            >>> agg = PriceAggregator(OracleConfig(min_count_to_aggregate=3))
            >>> obs = [PriceObservation(f, p, 0) for f, p in [("a", 3), ("b", 1), ("c", 2)]]
            >>> agg.aggregate(obs, now=0).price
            2
        """
        # Step 1: Drop observations outside the window
        live, expired = self.evict_expired(observations, now)

        # Step 2: Wait for quorum
        if len(live) < self.config.min_count_to_aggregate:
            return AggregationResult(
                price=None,
                metadata={
                    "error": "insufficient_observations",
                    "available": len(live),
                    "required": self.config.min_count_to_aggregate,
                    "expired": len(expired),
                },
                observations=live,
            )

        # Step 3: Upper-middle element of the sorted prices
        prices = sorted(o.price for o in live)
        picked = prices[len(prices) // 2]

        return AggregationResult(
            price=picked,
            metadata={
                "feeders": [o.feeder for o in live],
                "count": len(live),
                "expired": len(expired),
            },
            observations=live,
        )

    def check_deviation(self, price: int, twap: int) -> bool:
        """Check whether a price lies inside the band around the twap.

        The band is exclusive at both ends: with a multiplier of 2 and a twap
        of 100, prices 51..199 pass while 50 and 200 do not. A zero twap
        accepts anything so a fresh asset can be primed.

        :param price: Submitted price.
        :param twap: Current aggregated price.
        :returns: True if the price may be accepted.
        """
        if twap == 0:
            return True
        deviation = self.config.max_price_deviation
        if price >= twap * deviation:
            return False
        if twap >= price * deviation:
            return False
        return True
