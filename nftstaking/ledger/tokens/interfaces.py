"""
Interfaces of the two external token contracts the staking ledger talks to.
"""
from typing import Protocol, runtime_checkable


class TokenError(Exception):
    """Raised by a token contract when it refuses an operation (the EVM's revert)."""
    pass


@runtime_checkable
class TokenCustody(Protocol):
    """Non-fungible collection whose tokens are staked."""

    address: str

    def owner_of(self, token_id: int) -> str:
        ...

    def transfer_from(self, caller: str, from_addr: str, to_addr: str, token_id: int) -> bool:
        ...


@runtime_checkable
class RewardSource(Protocol):
    """Fungible token the rewards are paid in."""

    address: str

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        ...
