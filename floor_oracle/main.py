#!/usr/bin/env python3
"""NFT Floor-Price Oracle replay tool.

Builds an in-memory floor-price oracle, replays a JSON Lines file of
administrative calls and price submissions against it, and prints the
resulting twap per asset.

Each line is an object with ``time``, ``caller`` and ``action`` plus the
action's arguments, e.g.::

    {"time": 0, "caller": "0xf39F...", "action": "setPrice", "asset": "0x5Fb...", "price": "1000000000000000000"}
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Hashable

from .src.AccessControl import (
    FEEDER_ROLE,
    UPDATER_ROLE,
    AccessControl,
    role_from_name,
)
from .src.errors import OracleError
from .src.FloorPriceAggregator import FloorPriceAggregator
from .src.OracleConfig import OracleConfig

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

ACTIONS = (
    "setPrice",
    "addAssets",
    "removeAsset",
    "setOracles",
    "setConfig",
    "setPause",
    "grantRole",
    "revokeRole",
)


def parse_list(value: str | None) -> list[str]:
    """Parse a comma-separated list, dropping blanks.

    :param value: String like ``"0xabc, 0xdef"``.
    :returns: List of stripped items.
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def load_events(path: Path) -> list[dict[str, Any]]:
    """Load replay events from a JSON Lines file.

    Blank lines and lines starting with ``#`` are skipped.

    :param path: File to read.
    :returns: Parsed events in file order.
    :raises ValueError: If a line is not a JSON object.
    """
    events = []
    with open(path, "r") as file:
        for lineno, line in enumerate(file, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{lineno}: invalid JSON: {e}") from e
            if not isinstance(event, dict):
                raise ValueError(f"{path}:{lineno}: expected a JSON object")
            events.append(event)
    return events


def apply_event(
    oracle: FloorPriceAggregator, acl: AccessControl, event: dict[str, Any]
) -> None:
    """Apply a single replay event.

    :param oracle: Oracle to mutate.
    :param acl: Role registry used by the oracle.
    :param event: Event object.
    :raises ValueError: If the event is malformed.
    :raises OracleError: If the oracle rejects the call.
    """
    action = event.get("action")
    if action not in ACTIONS:
        raise ValueError(f"Unknown action {action!r}. Available: {', '.join(ACTIONS)}")

    try:
        caller: Hashable = event["caller"]
        if action == "setPrice":
            oracle.set_price(
                caller, event["asset"], int(event["price"]), now=int(event["time"])
            )
        elif action == "addAssets":
            oracle.add_assets(caller, event["assets"])
        elif action == "removeAsset":
            oracle.remove_asset(caller, event["asset"])
        elif action == "setOracles":
            oracle.set_oracles(caller, event["feeders"])
        elif action == "setConfig":
            oracle.set_config(
                caller,
                int(event["minCount"]),
                int(event["expirationPeriod"]),
                int(event["maxDeviation"]),
            )
        elif action == "setPause":
            oracle.set_pause(caller, event["asset"], bool(event["paused"]))
        elif action == "grantRole":
            acl.grant_role(caller, role_from_name(event["role"]), event["account"])
        elif action == "revokeRole":
            acl.revoke_role(caller, role_from_name(event["role"]), event["account"])
    except KeyError as e:
        raise ValueError(f"{action} event missing field {e}") from e


def replay(
    oracle: FloorPriceAggregator,
    acl: AccessControl,
    events: list[dict[str, Any]],
) -> int:
    """Replay events in order, logging and skipping rejected ones.

    :param oracle: Oracle to mutate.
    :param acl: Role registry used by the oracle.
    :param events: Events to apply.
    :returns: Number of rejected events.
    """
    rejected = 0
    for index, event in enumerate(events):
        try:
            apply_event(oracle, acl, event)
        except (OracleError, ValueError) as e:
            rejected += 1
            logger.warning(f"Event {index} ({event.get('action')}) rejected: {e}")
    return rejected


def build_oracle(
    admin: str,
    config: OracleConfig,
    updaters: list[str],
    feeders: list[str],
    assets: list[str],
) -> tuple[FloorPriceAggregator, AccessControl]:
    """Create an oracle with its roles, feeders and assets set up.

    :returns: Tuple of (oracle, access control).
    """
    acl = AccessControl(admin=admin)
    for updater in updaters:
        acl.grant_role(admin, UPDATER_ROLE, updater)
    for feeder in feeders:
        acl.grant_role(admin, FEEDER_ROLE, feeder)

    oracle = FloorPriceAggregator(acl, config=config)
    oracle.set_oracles(admin, feeders)
    oracle.add_assets(admin, assets)
    return oracle, acl


def main() -> None:
    """Main entry point for the floor-price oracle replay CLI."""
    parser = argparse.ArgumentParser(
        description="NFT Floor-Price Oracle: replay feeder submissions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Actions:
  setPrice(asset, price), addAssets(assets), removeAsset(asset),
  setOracles(feeders), setConfig(minCount, expirationPeriod, maxDeviation),
  setPause(asset, paused), grantRole(role, account), revokeRole(role, account)

Examples:
  python -m floor_oracle.main events.jsonl --admin 0xf39F... \\
      --feeders 0x7099...,0x3C44... --assets 0x5FbD...

Environment variables (CLI args take precedence):
  ADMIN_ADDRESS, UPDATERS, FEEDERS, ASSETS,
  MIN_COUNT_TO_AGGREGATE, EXPIRATION_PERIOD, MAX_PRICE_DEVIATION
""",
    )

    parser.add_argument("events", type=Path, help="JSON Lines file of events")

    parser.add_argument(
        "--admin",
        type=str,
        help="Address holding the admin role",
        default=os.environ.get("ADMIN_ADDRESS"),
    )

    parser.add_argument(
        "--updaters",
        type=str,
        help="Comma-separated addresses granted the updater role",
        default=os.environ.get("UPDATERS"),
    )

    parser.add_argument(
        "--feeders",
        type=str,
        help="Comma-separated feeder addresses (registered and granted the feeder role)",
        default=os.environ.get("FEEDERS"),
    )

    parser.add_argument(
        "--assets",
        type=str,
        help="Comma-separated assets to register before replay",
        default=os.environ.get("ASSETS"),
    )

    parser.add_argument(
        "--min-count",
        dest="min_count",
        type=int,
        help="Observations required to aggregate (default: 3)",
        default=None,
    )

    parser.add_argument(
        "--expiration-period",
        dest="expiration_period",
        type=int,
        help="Seconds an observation stays valid (default: 1800)",
        default=None,
    )

    parser.add_argument(
        "--max-deviation",
        dest="max_deviation",
        type=int,
        help="Accepted price band multiplier around the twap (default: 2)",
        default=None,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.admin:
        parser.error("--admin (or ADMIN_ADDRESS) is required")

    # CLI args override environment, which overrides defaults
    try:
        env_config = OracleConfig.from_env()
        config = OracleConfig(
            min_count_to_aggregate=(
                args.min_count
                if args.min_count is not None
                else env_config.min_count_to_aggregate
            ),
            expiration_period=(
                args.expiration_period
                if args.expiration_period is not None
                else env_config.expiration_period
            ),
            max_price_deviation=(
                args.max_deviation
                if args.max_deviation is not None
                else env_config.max_price_deviation
            ),
        )
    except ValueError as e:
        parser.error(str(e))

    logger.info("=" * 60)
    logger.info("NFT Floor-Price Oracle - Replay")
    logger.info("=" * 60)
    logger.info(f"Events:            {args.events}")
    logger.info(f"Min Count:         {config.min_count_to_aggregate}")
    logger.info(f"Expiration:        {config.expiration_period}s")
    logger.info(f"Max Deviation:     {config.max_price_deviation}x")
    logger.info("=" * 60)

    try:
        oracle, acl = build_oracle(
            admin=args.admin,
            config=config,
            updaters=parse_list(args.updaters),
            feeders=parse_list(args.feeders),
            assets=parse_list(args.assets),
        )
        events = load_events(args.events)
        rejected = replay(oracle, acl, events)
    except (OSError, ValueError, OracleError) as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    logger.info(f"Replayed {len(events)} events, {rejected} rejected")
    prices = {str(asset): str(oracle.get_twap(asset)) for asset in oracle.get_assets()}
    print(json.dumps(prices, indent=2))


if __name__ == "__main__":
    main()
