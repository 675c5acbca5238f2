"""OracleConfig: Global aggregation parameters shared by all assets.

.. code-block:: python

    >>> config = OracleConfig(min_count_to_aggregate=3, expiration_period=60)
    >>> config.max_price_deviation
    2
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_MIN_COUNT_TO_AGGREGATE = 3
DEFAULT_EXPIRATION_PERIOD = 1800  # 30 minutes
DEFAULT_MAX_PRICE_DEVIATION = 2


@dataclass(frozen=True)
class OracleConfig:
    """Aggregation parameters.

    :ivar min_count_to_aggregate: Live observations needed before a new twap
        is computed.
    :ivar expiration_period: Seconds an observation stays eligible for
        aggregation.
    :ivar max_price_deviation: Multiplier bounding accepted prices around the
        current twap (2 means strictly between half and double).
    """

    min_count_to_aggregate: int = DEFAULT_MIN_COUNT_TO_AGGREGATE
    expiration_period: int = DEFAULT_EXPIRATION_PERIOD
    max_price_deviation: int = DEFAULT_MAX_PRICE_DEVIATION

    def __post_init__(self) -> None:
        if self.min_count_to_aggregate < 1:
            raise ValueError("min_count_to_aggregate must be at least 1")
        if self.expiration_period < 0:
            raise ValueError("expiration_period must not be negative")
        if self.max_price_deviation < 1:
            raise ValueError("max_price_deviation must be at least 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> OracleConfig:
        """Build a config from environment variables.

        Reads ``MIN_COUNT_TO_AGGREGATE``, ``EXPIRATION_PERIOD`` and
        ``MAX_PRICE_DEVIATION``; unset or empty variables fall back to the
        defaults.

        :param environ: Mapping to read from (default: ``os.environ``).
        :returns: New OracleConfig.
        :raises ValueError: If a value is not an integer or out of range.
        """
        env = os.environ if environ is None else environ
        return cls(
            min_count_to_aggregate=int(
                env.get("MIN_COUNT_TO_AGGREGATE") or DEFAULT_MIN_COUNT_TO_AGGREGATE
            ),
            expiration_period=int(
                env.get("EXPIRATION_PERIOD") or DEFAULT_EXPIRATION_PERIOD
            ),
            max_price_deviation=int(
                env.get("MAX_PRICE_DEVIATION") or DEFAULT_MAX_PRICE_DEVIATION
            ),
        )
