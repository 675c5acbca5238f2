"""Unit tests for FloorPriceAggregator."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from eth_account import Account

from floor_oracle.src.AccessControl import (
    DEFAULT_ADMIN_ROLE,
    FEEDER_ROLE,
    UPDATER_ROLE,
    AccessControl,
)
from floor_oracle.src.errors import (
    AssetNotRegistered,
    FeedPaused,
    InvalidPriceDeviation,
    PriceMustBePositive,
    Unauthorized,
)
from floor_oracle.src.FloorPriceAggregator import FloorPriceAggregator
from floor_oracle.src.OracleConfig import OracleConfig

ETH = 10**18

ADMIN = Account.create().address
UPDATER = Account.create().address
FEEDER_1 = Account.create().address
FEEDER_2 = Account.create().address
FEEDER_3 = Account.create().address
OUTSIDER = Account.create().address
DOODLES = Account.create().address
DAI = Account.create().address

FEEDERS = [FEEDER_1, FEEDER_2, FEEDER_3]


def make_oracle(
    config: OracleConfig | None = None,
) -> tuple[FloorPriceAggregator, AccessControl]:
    """Oracle with an updater, three feeders and DOODLES registered."""
    acl = AccessControl(admin=ADMIN)
    acl.grant_role(ADMIN, UPDATER_ROLE, UPDATER)
    for feeder in FEEDERS:
        acl.grant_role(ADMIN, FEEDER_ROLE, feeder)

    if config is None:
        config = OracleConfig(
            min_count_to_aggregate=1, expiration_period=0, max_price_deviation=200
        )
    oracle = FloorPriceAggregator(acl, config=config, feeders=FEEDERS)
    oracle.add_assets(ADMIN, [DOODLES])
    return oracle, acl


class TestAssetRegistry:
    """Test asset registration and removal."""

    def test_unregistered_asset_reads_zero(self) -> None:
        """Unknown assets read 0 instead of raising."""
        oracle, _ = make_oracle()
        assert oracle.get_twap(DAI) == 0
        assert oracle.get_last_updated(DAI) == 0

    def test_new_asset_reads_zero_until_primed(self) -> None:
        """A freshly added asset has no price yet."""
        oracle, _ = make_oracle()
        oracle.add_assets(ADMIN, [DAI])

        assert oracle.get_twap(DAI) == 0
        assert oracle.is_paused(DAI) is False
        assert oracle.get_observations(DAI) == []

    def test_can_get_quote_for_new_asset(self) -> None:
        """Prices can be fed for an asset added later."""
        oracle, _ = make_oracle()
        oracle.add_assets(ADMIN, [DAI])

        oracle.set_price(UPDATER, DAI, 5 * ETH, now=10)

        assert oracle.get_twap(DAI) == 5 * ETH

    def test_add_assets_is_idempotent(self) -> None:
        """Re-adding a registered asset keeps its state."""
        oracle, _ = make_oracle()
        oracle.set_price(ADMIN, DOODLES, 7, now=1)

        oracle.add_assets(ADMIN, [DOODLES, DOODLES])

        assert oracle.get_twap(DOODLES) == 7
        assert oracle.get_assets() == [DOODLES]

    def test_add_assets_requires_admin(self) -> None:
        """Updaters cannot register assets."""
        oracle, _ = make_oracle()
        with pytest.raises(Unauthorized):
            oracle.add_assets(UPDATER, [DAI])
        assert oracle.get_assets() == [DOODLES]

    def test_remove_asset_discards_state(self) -> None:
        """Removed assets read 0 and reject prices."""
        oracle, _ = make_oracle()
        oracle.set_price(ADMIN, DOODLES, 5, now=1)

        oracle.remove_asset(ADMIN, DOODLES)

        assert oracle.get_twap(DOODLES) == 0
        with pytest.raises(AssetNotRegistered):
            oracle.set_price(UPDATER, DOODLES, 5, now=2)

    def test_remove_unknown_asset_fails(self) -> None:
        """Removing twice raises AssetNotRegistered."""
        oracle, _ = make_oracle()
        oracle.remove_asset(ADMIN, DOODLES)

        with pytest.raises(AssetNotRegistered):
            oracle.remove_asset(ADMIN, DOODLES)

    def test_readded_asset_starts_fresh(self) -> None:
        """Removing then adding an asset resets its price."""
        oracle, _ = make_oracle()
        oracle.set_price(ADMIN, DOODLES, 5, now=1)
        oracle.remove_asset(ADMIN, DOODLES)
        oracle.add_assets(ADMIN, [DOODLES])

        assert oracle.get_twap(DOODLES) == 0

    def test_remove_asset_requires_admin(self) -> None:
        """Feeders cannot remove assets."""
        oracle, _ = make_oracle()
        with pytest.raises(Unauthorized):
            oracle.remove_asset(FEEDER_1, DOODLES)

    def test_address_case_is_normalized(self) -> None:
        """Lower-case spellings refer to the same asset."""
        oracle, _ = make_oracle()
        oracle.set_price(ADMIN, DOODLES.lower(), 9, now=1)

        assert oracle.get_twap(DOODLES) == 9


class TestSetPriceAuthorization:
    """Test who may feed prices."""

    def test_admin_updater_and_feeder_can_feed(self) -> None:
        """Admin, updater and registered feeders are all accepted."""
        oracle, _ = make_oracle()

        oracle.set_price(ADMIN, DOODLES, 1 * ETH, now=1)
        assert oracle.get_twap(DOODLES) == 1 * ETH

        oracle.set_price(UPDATER, DOODLES, 2 * ETH, now=2)
        assert oracle.get_twap(DOODLES) == 2 * ETH

        oracle.set_price(FEEDER_1, DOODLES, 3 * ETH, now=3)
        assert oracle.get_twap(DOODLES) == 3 * ETH

    def test_outsider_rejected(self) -> None:
        """Accounts without roles cannot feed."""
        oracle, _ = make_oracle()
        with pytest.raises(Unauthorized):
            oracle.set_price(OUTSIDER, DOODLES, 1 * ETH, now=1)

    def test_feeder_role_without_registry_rejected(self) -> None:
        """The feeder role alone is not enough."""
        oracle, acl = make_oracle()
        acl.grant_role(ADMIN, FEEDER_ROLE, OUTSIDER)

        with pytest.raises(Unauthorized):
            oracle.set_price(OUTSIDER, DOODLES, 1 * ETH, now=1)

    def test_registry_without_role_rejected(self) -> None:
        """Registry membership alone is not enough."""
        oracle, _ = make_oracle()
        oracle.set_oracles(ADMIN, FEEDERS + [OUTSIDER])

        with pytest.raises(Unauthorized):
            oracle.set_price(OUTSIDER, DOODLES, 1 * ETH, now=1)

    def test_revoked_feeder_rejected(self) -> None:
        """Revocation takes effect even while still in the registry."""
        oracle, acl = make_oracle()
        acl.revoke_role(ADMIN, FEEDER_ROLE, FEEDER_3)

        assert FEEDER_3 in oracle.get_feeders()
        with pytest.raises(Unauthorized):
            oracle.set_price(FEEDER_3, DOODLES, 3 * ETH, now=1)

    def test_revoked_updater_rejected(self) -> None:
        """Revoking the updater role blocks the updater immediately."""
        oracle, acl = make_oracle()
        oracle.set_price(UPDATER, DOODLES, 1 * ETH, now=1)

        acl.revoke_role(ADMIN, UPDATER_ROLE, UPDATER)

        with pytest.raises(Unauthorized):
            oracle.set_price(UPDATER, DOODLES, 1 * ETH, now=2)

    def test_set_oracles_replaces_feeders(self) -> None:
        """A new feeder set takes over; others are dropped."""
        oracle, acl = make_oracle()
        acl.grant_role(ADMIN, FEEDER_ROLE, OUTSIDER)

        oracle.set_oracles(ADMIN, [OUTSIDER])
        oracle.set_price(OUTSIDER, DOODLES, 2 * ETH, now=1)

        assert oracle.get_twap(DOODLES) == 2 * ETH
        assert oracle.get_feeders() == [OUTSIDER]
        with pytest.raises(Unauthorized):
            oracle.set_price(FEEDER_1, DOODLES, 2 * ETH, now=2)

    def test_set_oracles_requires_admin(self) -> None:
        """Feeders cannot change the feeder set."""
        oracle, _ = make_oracle()
        with pytest.raises(Unauthorized):
            oracle.set_oracles(FEEDER_1, [FEEDER_1])
        assert oracle.get_feeders() == FEEDERS


class TestSetPriceValidation:
    """Test price validation rules."""

    def test_only_admin_can_feed_zero(self) -> None:
        """Zero is an admin-only reset value."""
        oracle, _ = make_oracle()
        oracle.set_price(ADMIN, DOODLES, 5, now=1)

        with pytest.raises(PriceMustBePositive):
            oracle.set_price(FEEDER_3, DOODLES, 0, now=2)
        with pytest.raises(PriceMustBePositive):
            oracle.set_price(UPDATER, DOODLES, 0, now=2)

        oracle.set_price(ADMIN, DOODLES, 0, now=3)
        assert oracle.get_twap(DOODLES) == 0

    def test_negative_price_rejected_for_admin(self) -> None:
        """Negative prices are never valid."""
        oracle, _ = make_oracle()
        with pytest.raises(PriceMustBePositive):
            oracle.set_price(ADMIN, DOODLES, -1, now=1)

    def test_unknown_asset_rejected(self) -> None:
        """Prices for unregistered assets raise AssetNotRegistered."""
        oracle, _ = make_oracle()
        with pytest.raises(AssetNotRegistered):
            oracle.set_price(FEEDER_1, DAI, 1 * ETH, now=1)
        with pytest.raises(AssetNotRegistered):
            oracle.set_price(ADMIN, DAI, 1 * ETH, now=1)

    def test_unauthorized_checked_before_asset(self) -> None:
        """Outsiders learn nothing about asset registration."""
        oracle, _ = make_oracle()
        with pytest.raises(Unauthorized):
            oracle.set_price(OUTSIDER, DAI, 0, now=1)

    def test_rejections_counted_for_feeder(self) -> None:
        """Rejected submissions show up in the feeder status."""
        oracle, _ = make_oracle()
        with pytest.raises(PriceMustBePositive):
            oracle.set_price(FEEDER_1, DOODLES, 0, now=1)
        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=2)

        status = oracle.feeder_registry.get_feeder_status(FEEDER_1)
        assert status.total_rejections == 1
        assert status.total_submissions == 1
        assert status.last_submission == 2


class TestAdminOverride:
    """Test the admin override path."""

    def test_admin_sets_twap_directly(self) -> None:
        """Admin prices bypass aggregation."""
        oracle, _ = make_oracle(OracleConfig(min_count_to_aggregate=3))
        oracle.set_price(ADMIN, DOODLES, 5, now=42)

        assert oracle.get_twap(DOODLES) == 5
        assert oracle.get_last_updated(DOODLES) == 42
        assert oracle.get_observations(DOODLES) == []

    def test_admin_bypasses_deviation(self) -> None:
        """Admin prices are not screened by the deviation band."""
        oracle, _ = make_oracle(
            OracleConfig(min_count_to_aggregate=1, max_price_deviation=2)
        )
        oracle.set_price(ADMIN, DOODLES, 1 * ETH, now=1)

        oracle.set_price(ADMIN, DOODLES, 10 * ETH, now=2)

        assert oracle.get_twap(DOODLES) == 10 * ETH

    def test_admin_override_clears_observations(self) -> None:
        """Pending observations are discarded by an override."""
        oracle, _ = make_oracle(
            OracleConfig(min_count_to_aggregate=3, expiration_period=600)
        )
        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=1)
        oracle.set_price(FEEDER_2, DOODLES, 1 * ETH, now=2)

        oracle.set_price(ADMIN, DOODLES, 2 * ETH, now=3)
        oracle.set_price(FEEDER_3, DOODLES, 3 * ETH, now=4)

        assert oracle.get_twap(DOODLES) == 2 * ETH
        assert len(oracle.get_observations(DOODLES)) == 1


class TestAggregation:
    """Test quorum, median pick and expiry."""

    def test_aggregates_only_when_min_count_reached(self) -> None:
        """Twap moves only once enough observations exist."""
        oracle, _ = make_oracle()
        oracle.set_price(ADMIN, DOODLES, ETH // 2, now=0)
        oracle.set_config(ADMIN, 3, 60, 200)
        initial = oracle.get_twap(DOODLES)

        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=61)
        assert oracle.get_twap(DOODLES) == initial

        oracle.set_price(FEEDER_2, DOODLES, 2 * ETH, now=61)
        assert oracle.get_twap(DOODLES) == initial

        oracle.set_price(FEEDER_3, DOODLES, 3 * ETH, now=61)
        # position int(3/2)=1 of (1, 2, 3)
        assert oracle.get_twap(DOODLES) == 2 * ETH

    def test_even_count_takes_upper_middle(self) -> None:
        """Even windows pick index count // 2, not an average."""
        oracle, acl = make_oracle(
            OracleConfig(min_count_to_aggregate=4, expiration_period=600)
        )
        extra = Account.create().address
        acl.grant_role(ADMIN, FEEDER_ROLE, extra)
        oracle.set_oracles(ADMIN, FEEDERS + [extra])

        for feeder, price in zip(FEEDERS + [extra], [4, 1, 3, 2]):
            oracle.set_price(feeder, DOODLES, price * ETH, now=10)

        assert oracle.get_twap(DOODLES) == 3 * ETH

    def test_quotes_expire(self) -> None:
        """Observations older than the window are evicted before aggregating."""
        oracle, _ = make_oracle()
        oracle.set_config(ADMIN, 2, 60, 200)

        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=0)
        assert oracle.get_twap(DOODLES) == 0

        oracle.set_price(FEEDER_2, DOODLES, 3 * ETH, now=30)
        # position 2/2 = 1 of (1, 3)
        assert oracle.get_twap(DOODLES) == 3 * ETH

        oracle.set_price(FEEDER_3, DOODLES, 5 * ETH, now=61)
        # first price expired, position 1 of (3, 5)
        assert oracle.get_twap(DOODLES) == 5 * ETH
        assert [o.price for o in oracle.get_observations(DOODLES)] == [3 * ETH, 5 * ETH]
        assert oracle.get_last_updated(DOODLES) == 61

    def test_observation_at_window_edge_is_kept(self) -> None:
        """Only strictly older observations expire."""
        oracle, _ = make_oracle()
        oracle.set_config(ADMIN, 2, 60, 200)

        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=0)
        oracle.set_price(FEEDER_2, DOODLES, 3 * ETH, now=30)
        oracle.set_price(FEEDER_3, DOODLES, 5 * ETH, now=60)

        # position 3/2 = 1 of (1, 3, 5)
        assert oracle.get_twap(DOODLES) == 3 * ETH
        assert len(oracle.get_observations(DOODLES)) == 3

    def test_expired_quorum_keeps_twap(self) -> None:
        """When expiry drops below quorum the old twap stays."""
        oracle, _ = make_oracle()
        oracle.set_config(ADMIN, 2, 60, 200)
        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=0)
        oracle.set_price(FEEDER_2, DOODLES, 1 * ETH, now=1)
        assert oracle.get_twap(DOODLES) == 1 * ETH

        oracle.set_price(FEEDER_3, DOODLES, 3 * ETH, now=500)

        assert oracle.get_twap(DOODLES) == 1 * ETH
        assert len(oracle.get_observations(DOODLES)) == 1

    def test_reads_do_not_evict(self) -> None:
        """Stale observations stay until the next accepted write."""
        oracle, _ = make_oracle()
        oracle.set_config(ADMIN, 1, 60, 200)
        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=0)

        assert oracle.get_twap(DOODLES) == 1 * ETH
        assert len(oracle.get_observations(DOODLES)) == 1

    def test_set_config_does_not_reaggregate(self) -> None:
        """A lower quorum applies only from the next submission."""
        oracle, _ = make_oracle(
            OracleConfig(min_count_to_aggregate=3, expiration_period=600)
        )
        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=1)
        oracle.set_price(FEEDER_2, DOODLES, 2 * ETH, now=2)

        oracle.set_config(ADMIN, 1, 600, 200)
        assert oracle.get_twap(DOODLES) == 0

        oracle.set_price(FEEDER_3, DOODLES, 3 * ETH, now=3)
        assert oracle.get_twap(DOODLES) == 2 * ETH

    def test_concurrent_submissions_are_serialized(self) -> None:
        """Submissions from many threads are all recorded."""
        oracle, _ = make_oracle(
            OracleConfig(min_count_to_aggregate=1, expiration_period=10_000)
        )

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(
                pool.map(
                    lambda i: oracle.set_price(UPDATER, DOODLES, 1 * ETH, now=i),
                    range(200),
                )
            )

        assert len(oracle.get_observations(DOODLES)) == 200
        assert oracle.get_twap(DOODLES) == 1 * ETH


class TestDeviation:
    """Test the deviation band."""

    def test_prices_outside_band_rejected(self) -> None:
        """Prices at or beyond the multiplier are rejected."""
        oracle, _ = make_oracle()
        oracle.set_config(ADMIN, 1, 60, 200)
        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=0)

        oracle.set_config(ADMIN, 1, 60, 2)

        with pytest.raises(InvalidPriceDeviation):
            oracle.set_price(FEEDER_2, DOODLES, ETH // 4, now=1)
        with pytest.raises(InvalidPriceDeviation):
            oracle.set_price(FEEDER_2, DOODLES, 2 * ETH, now=1)
        with pytest.raises(InvalidPriceDeviation):
            oracle.set_price(FEEDER_2, DOODLES, ETH // 2, now=1)

        assert oracle.get_twap(DOODLES) == 1 * ETH
        assert len(oracle.get_observations(DOODLES)) == 1

    def test_price_just_inside_band_accepted(self) -> None:
        """Half the twap plus one unit is accepted."""
        oracle, _ = make_oracle()
        oracle.set_config(ADMIN, 1, 60, 200)
        oracle.set_price(FEEDER_1, DOODLES, 1 * ETH, now=0)
        oracle.set_config(ADMIN, 1, 60, 2)

        oracle.set_price(FEEDER_1, DOODLES, ETH // 2 + 1, now=100)

        assert oracle.get_twap(DOODLES) == ETH // 2 + 1

    def test_error_carries_band_details(self) -> None:
        """InvalidPriceDeviation reports price, twap and multiplier."""
        oracle, _ = make_oracle(
            OracleConfig(min_count_to_aggregate=1, max_price_deviation=2)
        )
        oracle.set_price(ADMIN, DOODLES, 100, now=0)

        with pytest.raises(InvalidPriceDeviation) as exc_info:
            oracle.set_price(FEEDER_1, DOODLES, 200, now=1)

        assert exc_info.value.price == 200
        assert exc_info.value.twap == 100
        assert exc_info.value.max_price_deviation == 2

    def test_zero_twap_accepts_any_price(self) -> None:
        """An unprimed asset accepts the first price regardless of band."""
        oracle, _ = make_oracle(
            OracleConfig(min_count_to_aggregate=1, max_price_deviation=2)
        )
        oracle.set_price(FEEDER_1, DOODLES, 1_000 * ETH, now=0)

        assert oracle.get_twap(DOODLES) == 1_000 * ETH


class TestPause:
    """Test pausing price feeds."""

    def test_paused_feed_rejects_prices(self) -> None:
        """Writes fail while paused and succeed after unpausing."""
        oracle, _ = make_oracle()
        oracle.set_pause(ADMIN, DOODLES, True)

        with pytest.raises(FeedPaused):
            oracle.set_price(UPDATER, DOODLES, 8 * ETH, now=1)

        oracle.set_pause(ADMIN, DOODLES, False)
        oracle.set_price(UPDATER, DOODLES, 8 * ETH, now=2)

        assert oracle.get_twap(DOODLES) == 8 * ETH

    def test_pause_blocks_admin_too(self) -> None:
        """Pause is a hard stop for every caller."""
        oracle, _ = make_oracle()
        oracle.set_pause(ADMIN, DOODLES, True)

        with pytest.raises(FeedPaused):
            oracle.set_price(ADMIN, DOODLES, 1 * ETH, now=1)

    def test_reads_unaffected_by_pause(self) -> None:
        """The twap stays readable while paused."""
        oracle, _ = make_oracle()
        oracle.set_price(ADMIN, DOODLES, 5, now=1)
        oracle.set_pause(ADMIN, DOODLES, True)

        assert oracle.get_twap(DOODLES) == 5
        assert oracle.is_paused(DOODLES) is True

    def test_only_admin_can_pause(self) -> None:
        """Updaters and feeders cannot pause; a new admin can."""
        oracle, acl = make_oracle()

        with pytest.raises(Unauthorized):
            oracle.set_pause(UPDATER, DOODLES, True)
        with pytest.raises(Unauthorized):
            oracle.set_pause(FEEDER_1, DOODLES, True)

        acl.grant_role(ADMIN, DEFAULT_ADMIN_ROLE, FEEDER_3)
        oracle.set_pause(FEEDER_3, DOODLES, True)
        assert oracle.is_paused(DOODLES) is True

        oracle.set_pause(ADMIN, DOODLES, False)
        assert oracle.is_paused(DOODLES) is False

        with pytest.raises(Unauthorized):
            oracle.set_pause(UPDATER, DOODLES, True)

    def test_pause_unknown_asset_fails(self) -> None:
        """Pausing an unregistered asset raises AssetNotRegistered."""
        oracle, _ = make_oracle()
        with pytest.raises(AssetNotRegistered):
            oracle.set_pause(ADMIN, DAI, True)


class TestSetConfig:
    """Test config updates."""

    def test_set_config_replaces_values(self) -> None:
        """All three parameters are replaced together."""
        oracle, _ = make_oracle()
        oracle.set_config(ADMIN, 3, 60, 2)

        assert oracle.config == OracleConfig(
            min_count_to_aggregate=3, expiration_period=60, max_price_deviation=2
        )

    def test_invalid_config_keeps_previous(self) -> None:
        """Out-of-range values raise and change nothing."""
        oracle, _ = make_oracle()
        before = oracle.config

        with pytest.raises(ValueError, match="min_count_to_aggregate"):
            oracle.set_config(ADMIN, 0, 60, 2)

        assert oracle.config == before

    def test_set_config_requires_admin(self) -> None:
        """Updaters cannot change the config."""
        oracle, _ = make_oracle()
        with pytest.raises(Unauthorized):
            oracle.set_config(UPDATER, 1, 1, 1)
