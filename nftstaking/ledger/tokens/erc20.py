"""
In-memory ERC20 token used as the reward source.
"""
from typing import Dict
import hashlib
import logging
from .interfaces import TokenError

logger = logging.getLogger(__name__)


class ERC20Token:
    def __init__(self, name: str, symbol: str, initial_holder: str = "", initial_supply: int = 0,
                 address: str = "", decimals: int = 18):
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.address = address or "0x" + hashlib.sha256(f"{name}:{symbol}:erc20".encode()).hexdigest()[-40:]

        self.balances: Dict[str, int] = {}
        self.allowances: Dict[str, Dict[str, int]] = {}  # owner -> spender -> amount
        self._total_supply = 0

        if initial_holder and initial_supply:
            self.mint(initial_holder, initial_supply)

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner, {}).get(spender, 0)

    def mint(self, to: str, amount: int) -> bool:
        self._validate_amount(amount)
        self.balances[to] = self.balance_of(to) + amount
        self._total_supply += amount
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        self._validate_amount(amount)
        if not recipient:
            raise TokenError("ERC20: transfer to the zero address")
        balance = self.balance_of(sender)
        if balance < amount:
            raise TokenError(f"ERC20: transfer amount exceeds balance ({balance} < {amount})")

        self.balances[sender] = balance - amount
        self.balances[recipient] = self.balance_of(recipient) + amount
        logger.debug(f"{self.symbol} Transfer {amount}: {sender[:10]} -> {recipient[:10]}")
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self._validate_amount(amount)
        self.allowances.setdefault(owner, {})[spender] = amount
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        allowed = self.allowance(from_addr, spender)
        if allowed < amount:
            raise TokenError(f"ERC20: insufficient allowance ({allowed} < {amount})")
        self.transfer(from_addr, to_addr, amount)
        self.allowances[from_addr][spender] = allowed - amount
        return True

    def _validate_amount(self, amount: int):
        if not isinstance(amount, int) or amount < 0:
            raise TokenError(f"ERC20: invalid amount {amount!r}")
