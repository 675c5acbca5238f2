"""AccessControl: Role-based permission checks for oracle operations.

The aggregator only depends on :class:`PermissionChecker`, which answers
``has_role(account, role)``. :class:`AccessControl` is an in-memory
implementation with admin-gated grants and revocations. Role identifiers match
the on-chain scheme: the admin role is 32 zero bytes and the other roles are
``keccak256`` of their names.

.. code-block:: python

    >>> acl = AccessControl(admin="0x" + "11" * 20)
    >>> acl.grant_role("0x" + "11" * 20, UPDATER_ROLE, "0x" + "22" * 20)
    >>> acl.has_role("0x" + "22" * 20, UPDATER_ROLE)
    True
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Hashable

from web3 import Web3

from .addresses import normalize_address
from .errors import Unauthorized

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_ROLE = bytes(32)
UPDATER_ROLE = bytes(Web3.keccak(text="UPDATER_ROLE"))
FEEDER_ROLE = bytes(Web3.keccak(text="FEEDER_ROLE"))

ROLE_NAMES: dict[str, bytes] = {
    "DEFAULT_ADMIN_ROLE": DEFAULT_ADMIN_ROLE,
    "UPDATER_ROLE": UPDATER_ROLE,
    "FEEDER_ROLE": FEEDER_ROLE,
}


def role_from_name(name: str) -> bytes:
    """Look up a role identifier by name.

    :param name: Role name such as ``"UPDATER_ROLE"`` (case-insensitive,
        the ``_ROLE`` suffix is optional).
    :returns: 32-byte role identifier.
    :raises ValueError: If the role name is unknown.
    """
    key = name.strip().upper()
    if not key.endswith("_ROLE"):
        key += "_ROLE"
    if key == "ADMIN_ROLE":
        key = "DEFAULT_ADMIN_ROLE"
    if key not in ROLE_NAMES:
        raise ValueError(f"Unknown role '{name}'. Available: {', '.join(ROLE_NAMES)}")
    return ROLE_NAMES[key]


class PermissionChecker(ABC):
    """Abstract capability check consumed by the oracle."""

    @abstractmethod
    def has_role(self, account: Hashable, role: bytes) -> bool:
        """Check whether an account currently holds a role.

        :param account: Caller identity.
        :param role: 32-byte role identifier.
        :returns: True if the role is held.
        """
        pass


class AccessControl(PermissionChecker):
    """In-memory role registry.

    Only holders of :data:`DEFAULT_ADMIN_ROLE` may grant or revoke roles.
    Changes take effect for the very next check.

    :ivar _members: Mapping of role id to the set of accounts holding it.
    """

    def __init__(self, admin: Hashable) -> None:
        """Initialize the registry with a single admin.

        :param admin: Account granted :data:`DEFAULT_ADMIN_ROLE`.
        """
        self._members: dict[bytes, set[Hashable]] = {
            DEFAULT_ADMIN_ROLE: {normalize_address(admin)}
        }

    def has_role(self, account: Hashable, role: bytes) -> bool:
        return normalize_address(account) in self._members.get(role, set())

    def grant_role(self, caller: Hashable, role: bytes, account: Hashable) -> None:
        """Grant a role to an account.

        :param caller: Account performing the grant; must be an admin.
        :param role: Role identifier.
        :param account: Account receiving the role.
        :raises Unauthorized: If caller is not an admin.
        """
        self._check_admin(caller, "grant roles")
        account = normalize_address(account)
        self._members.setdefault(role, set()).add(account)
        logger.info(f"Granted role {role.hex()[:8]} to {account}")

    def revoke_role(self, caller: Hashable, role: bytes, account: Hashable) -> None:
        """Revoke a role from an account.

        :param caller: Account performing the revocation; must be an admin.
        :param role: Role identifier.
        :param account: Account losing the role.
        :raises Unauthorized: If caller is not an admin.
        """
        self._check_admin(caller, "revoke roles")
        account = normalize_address(account)
        self._members.get(role, set()).discard(account)
        logger.info(f"Revoked role {role.hex()[:8]} from {account}")

    def renounce_role(self, account: Hashable, role: bytes) -> None:
        """Drop a role held by the calling account itself."""
        account = normalize_address(account)
        self._members.get(role, set()).discard(account)
        logger.info(f"{account} renounced role {role.hex()[:8]}")

    def get_role_members(self, role: bytes) -> list[Hashable]:
        """List accounts holding a role.

        :param role: Role identifier.
        :returns: Accounts in no particular order.
        """
        return list(self._members.get(role, set()))

    def _check_admin(self, caller: Hashable, action: str) -> None:
        if not self.has_role(caller, DEFAULT_ADMIN_ROLE):
            raise Unauthorized(caller, action)
