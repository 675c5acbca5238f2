"""Identity normalization for assets and feeders.

Assets and feeders are opaque keys. When a key is an EVM address it is
normalized to its EIP-55 checksum form so that ``0xabc...`` and ``0xABC...``
name the same collection or account.

.. code-block:: python

    >>> normalize_address("0x5fbdb2315678afecb367f032d93f642f64180aa3")
    '0x5FbDB2315678afecb367f032d93F642f64180aa3'
    >>> normalize_address("doodles")
    'doodles'
"""

from typing import Hashable

from web3 import Web3


def normalize_address(value: Hashable) -> Hashable:
    """Return the checksum form of an address, or the value unchanged.

    :param value: Asset or feeder identifier.
    :returns: Checksummed address for address strings, else ``value``.
    """
    if isinstance(value, str) and Web3.is_address(value):
        return Web3.to_checksum_address(value)
    return value
