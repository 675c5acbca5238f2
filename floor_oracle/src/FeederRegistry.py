"""FeederRegistry: Set of identities allowed to submit prices.

The registry is replaced wholesale by the admin. Alongside membership it
keeps per-feeder submission counters, which are dropped when a feeder leaves
the registry.

.. code-block:: python

    >>> registry = FeederRegistry(["alice", "bob"])
    >>> registry.is_feeder("alice")
    True
    >>> registry.record_submission("alice", now=100)
    >>> registry.get_feeder_status("alice").total_submissions
    1
    >>> registry.replace(["carol"])
    >>> registry.is_feeder("alice")
    False
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable, Iterable

from .addresses import normalize_address


@dataclass
class FeederStatus:
    """Tracks the submission history of a single feeder.

    :ivar total_submissions: Accepted submissions since joining the registry.
    :ivar total_rejections: Rejected submissions since joining the registry.
    :ivar last_submission: Timestamp of the last accepted submission.
    """

    total_submissions: int = 0
    total_rejections: int = 0
    last_submission: int = 0


class FeederRegistry:
    """Membership and bookkeeping for price feeders.

    :ivar feeders: Registered feeder ids in registration order.
    """

    def __init__(self, feeders: Iterable[Hashable] = ()) -> None:
        """Initialize the registry.

        :param feeders: Initial feeder ids.
        """
        self.feeders: list[Hashable] = []
        self._status: dict[Hashable, FeederStatus] = {}
        self.replace(feeders)

    def replace(self, feeders: Iterable[Hashable]) -> None:
        """Replace the whole registry.

        Feeders that stay keep their counters; removed feeders lose them.

        :param feeders: New feeder ids; duplicates are collapsed.
        """
        new_feeders: list[Hashable] = []
        for feeder in feeders:
            feeder = normalize_address(feeder)
            if feeder not in new_feeders:
                new_feeders.append(feeder)

        self._status = {
            f: self._status.get(f) or FeederStatus() for f in new_feeders
        }
        self.feeders = new_feeders

    def is_feeder(self, feeder: Hashable) -> bool:
        """Check registry membership.

        :param feeder: Feeder id to check.
        :returns: True if the id is registered.
        """
        return normalize_address(feeder) in self._status

    def record_submission(self, feeder: Hashable, now: int) -> None:
        """Record an accepted submission.

        Unregistered ids (updaters) are ignored.

        :param feeder: Submitting feeder id.
        :param now: Submission time in seconds.
        """
        status = self._status.get(normalize_address(feeder))
        if status is None:
            return
        status.total_submissions += 1
        status.last_submission = now

    def record_rejection(self, feeder: Hashable) -> None:
        """Record a rejected submission."""
        status = self._status.get(normalize_address(feeder))
        if status is not None:
            status.total_rejections += 1

    def get_feeder_status(self, feeder: Hashable) -> FeederStatus | None:
        """Get the status of a feeder.

        :param feeder: Feeder id to query.
        :returns: FeederStatus or None if not registered.
        """
        return self._status.get(normalize_address(feeder))

    def get_all_status(self) -> dict[Hashable, FeederStatus]:
        """Get status of all registered feeders."""
        return dict(self._status)

    def __len__(self) -> int:
        return len(self.feeders)
