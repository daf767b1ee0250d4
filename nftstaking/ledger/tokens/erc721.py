"""
In-memory ERC721 collection.

Implements the subset of EIP-721 the staking contract depends on: ownership,
per-token approval, operator approval and transfer_from.
"""
from typing import Dict, List, Optional
import hashlib
import logging
from .interfaces import TokenError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


class ERC721Collection:
    def __init__(self, name: str, symbol: str, address: str = "", minter: str = ""):
        self.name = name
        self.symbol = symbol
        self.address = address or "0x" + hashlib.sha256(f"{name}:{symbol}".encode()).hexdigest()[-40:]
        self.minter = minter

        self.owners: Dict[int, str] = {}                               # token_id -> owner
        self.balances: Dict[str, int] = {}                             # owner -> count
        self.token_approvals: Dict[int, str] = {}                      # token_id -> approved
        self.operator_approvals: Dict[str, Dict[str, bool]] = {}       # owner -> operator -> approved
        self.transfers: List[dict] = []                                # Transfer event log

    # --- Views ---
    def owner_of(self, token_id: int) -> str:
        owner = self.owners.get(token_id)
        if not owner:
            raise TokenError(f"ERC721: token {token_id} does not exist")
        return owner

    def balance_of(self, owner: str) -> int:
        return self.balances.get(owner, 0)

    def get_approved(self, token_id: int) -> str:
        self.owner_of(token_id)
        return self.token_approvals.get(token_id, ZERO_ADDRESS)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self.operator_approvals.get(owner, {}).get(operator, False)

    # --- Mutations ---
    def mint(self, to: str, token_id: int, caller: Optional[str] = None) -> bool:
        if self.minter and caller != self.minter:
            raise TokenError("ERC721: caller is not the minter")
        if not to or to == ZERO_ADDRESS:
            raise TokenError("ERC721: mint to the zero address")
        if token_id in self.owners:
            raise TokenError(f"ERC721: token {token_id} already minted")

        self.owners[token_id] = to
        self.balances[to] = self.balances.get(to, 0) + 1
        self._emit_transfer(ZERO_ADDRESS, to, token_id)
        return True

    def approve(self, caller: str, to: str, token_id: int) -> bool:
        owner = self.owner_of(token_id)
        if to == owner:
            raise TokenError("ERC721: approval to current owner")
        if caller != owner and not self.is_approved_for_all(owner, caller):
            raise TokenError("ERC721: approve caller is not owner nor approved for all")

        self.token_approvals[token_id] = to
        return True

    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> bool:
        if caller == operator:
            raise TokenError("ERC721: approve to caller")
        self.operator_approvals.setdefault(caller, {})[operator] = approved
        return True

    def transfer_from(self, caller: str, from_addr: str, to_addr: str, token_id: int) -> bool:
        owner = self.owner_of(token_id)
        if owner != from_addr:
            raise TokenError(f"ERC721: transfer of token {token_id} from incorrect owner")
        if not to_addr or to_addr == ZERO_ADDRESS:
            raise TokenError("ERC721: transfer to the zero address")
        if not self._is_approved_or_owner(caller, token_id):
            raise TokenError("ERC721: caller is not token owner or approved")

        # Clear approval, move ownership
        self.token_approvals.pop(token_id, None)
        self.balances[from_addr] -= 1
        self.balances[to_addr] = self.balances.get(to_addr, 0) + 1
        self.owners[token_id] = to_addr
        self._emit_transfer(from_addr, to_addr, token_id)
        return True

    def _is_approved_or_owner(self, caller: str, token_id: int) -> bool:
        owner = self.owners[token_id]
        return (
            caller == owner
            or self.token_approvals.get(token_id) == caller
            or self.is_approved_for_all(owner, caller)
        )

    def _emit_transfer(self, from_addr: str, to_addr: str, token_id: int):
        self.transfers.append({"from": from_addr, "to": to_addr, "token_id": token_id})
        logger.debug(f"{self.symbol} Transfer #{token_id}: {from_addr[:10]} -> {to_addr[:10]}")
