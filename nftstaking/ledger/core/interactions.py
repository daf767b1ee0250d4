"""
External transfers queued by a ledger operation.

Operations never call the token contracts directly: they append interactions
to a journal, and the contract runs the journal only after the ledger effects
are committed. If one interaction fails, the ones already executed are undone
in reverse order and the whole call aborts with TransferFailed.
"""
from typing import List
import logging
from ...protocol.types.common import TransferFailed
from ..tokens.interfaces import TokenCustody, RewardSource

logger = logging.getLogger(__name__)


class Interaction:
    def execute(self) -> None:
        raise NotImplementedError

    def compensate(self) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return self.__class__.__name__


class CustodyTransfer(Interaction):
    """Moves one NFT between an account and the contract; the contract is the caller."""

    def __init__(self, collection: TokenCustody, operator: str, from_addr: str, to_addr: str, token_id: int):
        self.collection = collection
        self.operator = operator
        self.from_addr = from_addr
        self.to_addr = to_addr
        self.token_id = token_id

    def execute(self) -> None:
        if self.collection.transfer_from(self.operator, self.from_addr, self.to_addr, self.token_id) is False:
            raise TransferFailed(f"Collection refused transfer of token {self.token_id}")

    def compensate(self) -> None:
        # Only custody pulls are ever followed by another interaction, so the
        # contract owns the token here and may send it back.
        self.collection.transfer_from(self.operator, self.to_addr, self.from_addr, self.token_id)

    def describe(self) -> str:
        return f"token {self.token_id} {self.from_addr[:10]} -> {self.to_addr[:10]}"


class RewardTransfer(Interaction):
    """Pays reward tokens out of the contract's own balance."""

    def __init__(self, token: RewardSource, payer: str, recipient: str, amount: int):
        self.token = token
        self.payer = payer
        self.recipient = recipient
        self.amount = amount

    def execute(self) -> None:
        if self.token.transfer(self.payer, self.recipient, self.amount) is False:
            raise TransferFailed(f"Reward token refused transfer of {self.amount} to {self.recipient}")

    def compensate(self) -> None:
        self.token.transfer(self.recipient, self.payer, self.amount)

    def describe(self) -> str:
        return f"reward {self.amount} -> {self.recipient[:10]}"


class InteractionJournal:
    def __init__(self):
        self.pending: List[Interaction] = []
        self.executed: List[Interaction] = []

    def add(self, interaction: Interaction) -> None:
        self.pending.append(interaction)

    def __len__(self) -> int:
        return len(self.pending)

    def run(self) -> None:
        """Executes every queued interaction; on failure undoes the executed ones and raises TransferFailed."""
        for interaction in self.pending:
            try:
                interaction.execute()
            except Exception as e:
                logger.warning(f"Interaction failed ({interaction.describe()}): {e}")
                self._compensate()
                if isinstance(e, TransferFailed):
                    raise
                raise TransferFailed(f"Transfer failed ({interaction.describe()}): {e}") from e
            self.executed.append(interaction)

    def _compensate(self) -> None:
        for interaction in reversed(self.executed):
            try:
                interaction.compensate()
                logger.info(f"Compensated {interaction.describe()}")
            except Exception as e:
                logger.error(f"Failed to compensate {interaction.describe()}: {e}", exc_info=True)
        self.executed.clear()
