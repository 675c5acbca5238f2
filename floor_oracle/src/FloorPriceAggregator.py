"""FloorPriceAggregator: Multi-feeder NFT floor-price oracle.

This module keeps one trusted floor price (``twap``) per registered asset:
- Feeders submit observations, screened by a deviation band around the
  current twap
- Once enough live observations exist, the twap becomes their upper median
- Observations expire lazily, on the next accepted submission
- Admins register assets, manage feeders, tune the config, pause feeds and
  may override the twap directly

Every public operation runs under a single lock, so callers always observe
fully applied updates. Time is passed in by the caller rather than read from
a clock.

.. code-block:: python

    >>> oracle = FloorPriceAggregator(AccessControl(admin="deployer"))
    >>> oracle.add_assets("deployer", ["doodles"])
    >>> oracle.set_price("deployer", "doodles", 5, now=0)
    >>> oracle.get_twap("doodles")
    5
"""

from __future__ import annotations

import logging
import threading
from typing import Hashable, Iterable

from .AccessControl import (
    DEFAULT_ADMIN_ROLE,
    FEEDER_ROLE,
    UPDATER_ROLE,
    PermissionChecker,
)
from .addresses import normalize_address
from .AssetState import AssetState, PriceObservation
from .errors import (
    AssetNotRegistered,
    FeedPaused,
    InvalidPriceDeviation,
    OracleError,
    PriceMustBePositive,
    Unauthorized,
)
from .FeederRegistry import FeederRegistry
from .OracleConfig import OracleConfig
from .PriceAggregator import PriceAggregator

logger = logging.getLogger(__name__)


class FloorPriceAggregator:
    """Aggregated floor prices for a set of registered assets.

    :ivar permissions: Role check used to gate every mutating call.
    :ivar feeder_registry: Identities allowed to feed prices.
    :ivar aggregator: Eviction, median and deviation logic for the current
        config.
    """

    def __init__(
        self,
        permissions: PermissionChecker,
        config: OracleConfig | None = None,
        feeders: Iterable[Hashable] = (),
    ) -> None:
        """Initialize the oracle.

        :param permissions: Role checker providing admin, updater and feeder
            roles.
        :param config: Initial aggregation parameters (default:
            ``OracleConfig()``).
        :param feeders: Initial feeder registry.
        """
        self.permissions = permissions
        self.feeder_registry = FeederRegistry(feeders)
        self.aggregator = PriceAggregator(config)
        self._assets: dict[Hashable, AssetState] = {}
        self._lock = threading.Lock()

    @property
    def config(self) -> OracleConfig:
        """Aggregation parameters currently in effect."""
        return self.aggregator.config

    # -- administration ----------------------------------------------------

    def add_assets(self, caller: Hashable, assets: Iterable[Hashable]) -> None:
        """Register assets so they accept prices.

        Assets that are already registered keep their state.

        :param caller: Must hold the admin role.
        :param assets: Asset ids to register.
        :raises Unauthorized: If caller is not an admin.
        """
        with self._lock:
            self._require_admin(caller, "add assets")
            for asset in assets:
                asset = normalize_address(asset)
                if asset in self._assets:
                    continue
                self._assets[asset] = AssetState()
                logger.info(f"Asset {asset} registered")

    def remove_asset(self, caller: Hashable, asset: Hashable) -> None:
        """Deregister an asset and discard its twap and observations.

        :param caller: Must hold the admin role.
        :param asset: Asset id to remove.
        :raises Unauthorized: If caller is not an admin.
        :raises AssetNotRegistered: If the asset is unknown.
        """
        with self._lock:
            self._require_admin(caller, "remove assets")
            asset = normalize_address(asset)
            if asset not in self._assets:
                raise AssetNotRegistered(asset)
            del self._assets[asset]
            logger.info(f"Asset {asset} removed")

    def set_oracles(self, caller: Hashable, feeders: Iterable[Hashable]) -> None:
        """Replace the feeder registry.

        :param caller: Must hold the admin role.
        :param feeders: The complete new set of feeders.
        :raises Unauthorized: If caller is not an admin.
        """
        with self._lock:
            self._require_admin(caller, "set oracles")
            self.feeder_registry.replace(feeders)
            logger.info(f"Feeders set to {self.feeder_registry.feeders}")

    def set_config(
        self,
        caller: Hashable,
        min_count_to_aggregate: int,
        expiration_period: int,
        max_price_deviation: int,
    ) -> None:
        """Replace the aggregation parameters for all assets.

        Existing observations are not re-aggregated; the new values apply
        from the next submission on.

        :param caller: Must hold the admin role.
        :param min_count_to_aggregate: Live observations needed to aggregate.
        :param expiration_period: Observation lifetime in seconds.
        :param max_price_deviation: Deviation band multiplier.
        :raises Unauthorized: If caller is not an admin.
        :raises ValueError: If a parameter is out of range.
        """
        with self._lock:
            self._require_admin(caller, "set config")
            config = OracleConfig(
                min_count_to_aggregate=min_count_to_aggregate,
                expiration_period=expiration_period,
                max_price_deviation=max_price_deviation,
            )
            self.aggregator = PriceAggregator(config)
            logger.info(
                f"Config updated: min_count={min_count_to_aggregate}, "
                f"expiration={expiration_period}s, "
                f"max_deviation={max_price_deviation}x"
            )

    def set_pause(self, caller: Hashable, asset: Hashable, paused: bool) -> None:
        """Pause or resume price writes for an asset.

        :param caller: Must hold the admin role.
        :param asset: Asset id.
        :param paused: True to reject writes, False to accept them again.
        :raises Unauthorized: If caller is not an admin.
        :raises AssetNotRegistered: If the asset is unknown.
        """
        with self._lock:
            self._require_admin(caller, "pause feeds")
            asset = normalize_address(asset)
            state = self._get_state(asset)
            state.paused = paused
            logger.info(f"{asset}: feed {'paused' if paused else 'resumed'}")

    # -- prices ------------------------------------------------------------

    def set_price(
        self, caller: Hashable, asset: Hashable, price: int, *, now: int
    ) -> None:
        """Submit a price for an asset.

        Admins override the twap directly and clear pending observations.
        Updaters and registered feeders add an observation, after which the
        window is re-aggregated.

        :param caller: Admin, updater or registered feeder.
        :param asset: Asset id.
        :param price: Price in the smallest unit; admins may send 0.
        :param now: Current time in seconds.
        :raises Unauthorized: If caller may not feed prices.
        :raises PriceMustBePositive: If a non-admin sends 0.
        :raises AssetNotRegistered: If the asset is unknown.
        :raises FeedPaused: If the asset is paused.
        :raises InvalidPriceDeviation: If the price is outside the band.
        """
        with self._lock:
            asset = normalize_address(asset)
            is_admin = self.permissions.has_role(caller, DEFAULT_ADMIN_ROLE)
            if not is_admin and not self._can_feed(caller):
                raise Unauthorized(caller, "set prices")

            try:
                state = self._validate_submission(asset, price, is_admin)
            except OracleError:
                if not is_admin:
                    self.feeder_registry.record_rejection(caller)
                raise

            if is_admin:
                state.observations = []
                self._finalize_price(asset, state, price, now)
                return

            self._submit_observation(caller, asset, state, price, now)

    def get_twap(self, asset: Hashable) -> int:
        """Get the current aggregated price.

        :param asset: Asset id.
        :returns: The twap, or 0 if the asset is unknown or never priced.
        """
        with self._lock:
            state = self._assets.get(normalize_address(asset))
            return state.twap if state is not None else 0

    def get_last_updated(self, asset: Hashable) -> int:
        """Get the time the twap last changed.

        :param asset: Asset id.
        :returns: Timestamp in seconds, or 0 if never set or unknown.
        """
        with self._lock:
            state = self._assets.get(normalize_address(asset))
            return state.last_updated if state is not None else 0

    def is_paused(self, asset: Hashable) -> bool:
        """Check whether writes to an asset are paused.

        :raises AssetNotRegistered: If the asset is unknown.
        """
        with self._lock:
            return self._get_state(normalize_address(asset)).paused

    def get_observations(self, asset: Hashable) -> list[PriceObservation]:
        """Get the stored observations for an asset in arrival order.

        Stale entries stay here until the next accepted submission.

        :raises AssetNotRegistered: If the asset is unknown.
        """
        with self._lock:
            return list(self._get_state(normalize_address(asset)).observations)

    def get_assets(self) -> list[Hashable]:
        """List registered assets in registration order."""
        with self._lock:
            return list(self._assets)

    def get_feeders(self) -> list[Hashable]:
        """List registered feeders."""
        with self._lock:
            return list(self.feeder_registry.feeders)

    # -- internals ---------------------------------------------------------

    def _require_admin(self, caller: Hashable, action: str) -> None:
        if not self.permissions.has_role(caller, DEFAULT_ADMIN_ROLE):
            raise Unauthorized(caller, action)

    def _can_feed(self, caller: Hashable) -> bool:
        # Registry membership alone is not enough: the live role must also hold
        if self.permissions.has_role(caller, UPDATER_ROLE):
            return True
        return self.feeder_registry.is_feeder(caller) and self.permissions.has_role(
            caller, FEEDER_ROLE
        )

    def _get_state(self, asset: Hashable) -> AssetState:
        state = self._assets.get(asset)
        if state is None:
            raise AssetNotRegistered(asset)
        return state

    def _validate_submission(
        self, asset: Hashable, price: int, is_admin: bool
    ) -> AssetState:
        if price < 0 or (price == 0 and not is_admin):
            raise PriceMustBePositive(asset, price)
        state = self._get_state(asset)
        if state.paused:
            raise FeedPaused(asset)
        if not is_admin and not self.aggregator.check_deviation(price, state.twap):
            raise InvalidPriceDeviation(
                asset, price, state.twap, self.config.max_price_deviation
            )
        return state

    def _submit_observation(
        self,
        feeder: Hashable,
        asset: Hashable,
        state: AssetState,
        price: int,
        now: int,
    ) -> None:
        feeder = normalize_address(feeder)
        state.observations.append(PriceObservation(feeder, price, now))
        self.feeder_registry.record_submission(feeder, now)
        logger.debug(f"{asset}: observation {price} from {feeder} at {now}")

        result = self.aggregator.aggregate(state.observations, now=now)
        state.observations = result.observations

        if not result.success:
            meta = result.metadata
            logger.debug(
                f"{asset}: waiting for quorum "
                f"({meta.get('available')}/{meta.get('required')} observations, "
                f"{meta.get('expired')} expired)"
            )
            return

        assert result.price is not None
        self._finalize_price(asset, state, result.price, now)

    def _finalize_price(
        self, asset: Hashable, state: AssetState, price: int, now: int
    ) -> None:
        state.twap = price
        state.last_updated = now
        logger.info(f"{asset}: twap updated to {price} at {now}")
