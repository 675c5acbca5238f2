"""PriceRouter: Asset price lookup with a fallback source.

A lending protocol reads prices through the router. Each asset may be bound to
a primary :class:`PriceSource`, typically a :class:`FloorOracleWrapper` around
the floor-price oracle. A zero answer means "no active quote", so the router
then asks the fallback oracle instead of reporting a zero price.

.. code-block:: python

    >>> fallback = StaticPriceOracle(acl)
    >>> router = PriceRouter(acl, fallback_oracle=fallback)
    >>> router.set_asset_sources(admin, [doodles], [FloorOracleWrapper(oracle, doodles)])
    >>> router.get_asset_price(doodles)
    5000000000000000000
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Hashable, Sequence

from .AccessControl import DEFAULT_ADMIN_ROLE, PermissionChecker
from .addresses import normalize_address
from .errors import PriceUnavailable, Unauthorized
from .FloorPriceAggregator import FloorPriceAggregator

logger = logging.getLogger(__name__)


class PriceSource(ABC):
    """Abstract per-asset price feed."""

    @abstractmethod
    def latest_answer(self) -> int:
        """Return the latest price, or 0 if there is none."""
        pass


class FallbackOracle(ABC):
    """Abstract secondary oracle consulted when a source has no quote."""

    @abstractmethod
    def get_asset_price(self, asset: Hashable) -> int:
        """Return the price of an asset, or 0 if unknown."""
        pass


class FloorOracleWrapper(PriceSource):
    """Exposes the twap of one asset as a price source.

    :ivar oracle: Floor-price oracle to read from.
    :ivar asset: Asset whose twap is reported.
    """

    def __init__(self, oracle: FloorPriceAggregator, asset: Hashable) -> None:
        self.oracle = oracle
        self.asset = normalize_address(asset)

    def __repr__(self) -> str:
        return f"FloorOracleWrapper({self.asset!r})"

    def latest_answer(self) -> int:
        return self.oracle.get_twap(self.asset)


class StaticPriceOracle(FallbackOracle):
    """Fallback oracle holding admin-set prices in memory."""

    def __init__(self, permissions: PermissionChecker) -> None:
        """Initialize the oracle.

        :param permissions: Role checker; only admins may set prices.
        """
        self.permissions = permissions
        self._prices: dict[Hashable, int] = {}

    def set_asset_price(self, caller: Hashable, asset: Hashable, price: int) -> None:
        """Set the fallback price for an asset.

        :raises Unauthorized: If caller is not an admin.
        :raises ValueError: If price is negative.
        """
        if not self.permissions.has_role(caller, DEFAULT_ADMIN_ROLE):
            raise Unauthorized(caller, "set fallback prices")
        if price < 0:
            raise ValueError("price must not be negative")
        self._prices[normalize_address(asset)] = price

    def get_asset_price(self, asset: Hashable) -> int:
        return self._prices.get(normalize_address(asset), 0)


class PriceRouter:
    """Routes price reads to per-asset sources with a fallback.

    :ivar permissions: Role checker gating source configuration.
    :ivar fallback_oracle: Secondary oracle, or None.
    """

    def __init__(
        self,
        permissions: PermissionChecker,
        fallback_oracle: FallbackOracle | None = None,
    ) -> None:
        self.permissions = permissions
        self.fallback_oracle = fallback_oracle
        self._sources: dict[Hashable, PriceSource] = {}

    def set_asset_sources(
        self,
        caller: Hashable,
        assets: Sequence[Hashable],
        sources: Sequence[PriceSource | None],
    ) -> None:
        """Bind assets to price sources.

        Passing None as a source unbinds the asset, leaving it to the
        fallback oracle.

        :param caller: Must hold the admin role.
        :param assets: Asset ids.
        :param sources: Sources, one per asset.
        :raises Unauthorized: If caller is not an admin.
        :raises ValueError: If the lists differ in length.
        """
        self._require_admin(caller, "set asset sources")
        if len(assets) != len(sources):
            raise ValueError(
                f"assets and sources length mismatch ({len(assets)} != {len(sources)})"
            )
        for asset, source in zip(assets, sources):
            asset = normalize_address(asset)
            if source is None:
                self._sources.pop(asset, None)
            else:
                self._sources[asset] = source
            logger.info(f"Price source for {asset} set to {source!r}")

    def set_fallback_oracle(
        self, caller: Hashable, fallback_oracle: FallbackOracle | None
    ) -> None:
        """Replace the fallback oracle.

        :raises Unauthorized: If caller is not an admin.
        """
        self._require_admin(caller, "set fallback oracle")
        self.fallback_oracle = fallback_oracle
        logger.info(f"Fallback oracle set to {fallback_oracle!r}")

    def get_source_of_asset(self, asset: Hashable) -> PriceSource | None:
        """Get the primary source bound to an asset, if any."""
        return self._sources.get(normalize_address(asset))

    def get_asset_price(self, asset: Hashable) -> int:
        """Get the price of an asset.

        :param asset: Asset id.
        :returns: The primary source price when positive, otherwise the
            fallback price.
        :raises PriceUnavailable: If neither yields a positive price.
        """
        asset = normalize_address(asset)
        source = self._sources.get(asset)
        if source is not None:
            price = source.latest_answer()
            if price > 0:
                return price
            logger.debug(f"{asset}: no quote from {source!r}, using fallback")

        if self.fallback_oracle is not None:
            price = self.fallback_oracle.get_asset_price(asset)
            if price > 0:
                return price

        raise PriceUnavailable(asset)

    def get_assets_prices(self, assets: Sequence[Hashable]) -> list[int]:
        """Get prices for several assets.

        :raises PriceUnavailable: If any asset has no price.
        """
        return [self.get_asset_price(asset) for asset in assets]

    def _require_admin(self, caller: Hashable, action: str) -> None:
        if not self.permissions.has_role(caller, DEFAULT_ADMIN_ROLE):
            raise Unauthorized(caller, action)
