"""Exceptions raised by the floor-price oracle.

Every error rejects a single call before any state is touched, so callers can
retry with valid input or obtain the missing role.
"""

from typing import Any


class OracleError(Exception):
    """Base exception for oracle errors."""

    pass


class Unauthorized(OracleError):
    """Raised when the caller lacks the role required for an operation.

    :ivar caller: Identity that attempted the call.
    :ivar action: Name of the rejected operation.
    """

    def __init__(self, caller: Any, action: str):
        """Initialize the error.

        :param caller: Identity that attempted the call.
        :param action: Name of the rejected operation.
        """
        self.caller = caller
        self.action = action
        super().__init__(f"{caller} is not allowed to {action}")


class AssetNotRegistered(OracleError):
    """Raised when an operation references an unknown asset.

    :ivar asset: The asset that is not registered.
    """

    def __init__(self, asset: Any):
        self.asset = asset
        super().__init__(f"asset {asset} is not registered")


class FeedPaused(OracleError):
    """Raised when a price is written to a paused asset.

    :ivar asset: The paused asset.
    """

    def __init__(self, asset: Any):
        self.asset = asset
        super().__init__(f"price feed paused for {asset}")


class PriceMustBePositive(OracleError):
    """Raised when a non-admin submits a zero price."""

    def __init__(self, asset: Any, price: int):
        self.asset = asset
        self.price = price
        super().__init__(f"price for {asset} should be more than 0, got {price}")


class InvalidPriceDeviation(OracleError):
    """Raised when a price falls outside the band around the current twap.

    :ivar asset: Asset the price was submitted for.
    :ivar price: Rejected price.
    :ivar twap: Current aggregated price the band is centered on.
    :ivar max_price_deviation: Multiplier defining the band.
    """

    def __init__(self, asset: Any, price: int, twap: int, max_price_deviation: int):
        self.asset = asset
        self.price = price
        self.twap = twap
        self.max_price_deviation = max_price_deviation
        super().__init__(
            f"invalid price data for {asset}: {price} is outside "
            f"{max_price_deviation}x of twap {twap}"
        )


class PriceUnavailable(OracleError):
    """Raised by the price router when no source yields a positive price."""

    def __init__(self, asset: Any):
        self.asset = asset
        super().__init__(f"no price available for {asset}")
