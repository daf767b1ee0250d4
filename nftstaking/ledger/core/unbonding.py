"""
Unbonding queue: tokens that were unstaked and wait out the unbonding period
before they can be withdrawn.
"""
from typing import List, Optional
import logging
from ...protocol.types.stake import UnbondingRecord
from ...protocol.types.common import NoSuchUnbondingRecord, UnbondingNotElapsed
from ..tokens.interfaces import TokenCustody
from .state import LedgerState
from .interactions import InteractionJournal, CustodyTransfer

logger = logging.getLogger(__name__)


class UnbondingQueue:
    def __init__(self, custody: TokenCustody, contract_address: str):
        self.custody = custody
        self.contract_address = contract_address

    def enqueue(self, state: LedgerState, account: str, token_id: int,
                current_block: int, unbonding_period: int) -> UnbondingRecord:
        record = UnbondingRecord(
            token_id=token_id,
            owner=account,
            unstake_block=current_block,
            unlock_block=current_block + unbonding_period,
        )
        records = list(state.get_unbonding(account))
        records.append(record)
        # Oldest unlock first
        records.sort(key=lambda r: (r.unlock_block, r.unstake_block))
        state.set_unbonding(account, records)
        return record

    def find(self, state: LedgerState, account: str, token_id: int) -> Optional[UnbondingRecord]:
        return next((r for r in state.get_unbonding(account) if r.token_id == token_id), None)

    def withdraw(self, state: LedgerState, account: str, token_id: int,
                 current_block: int, journal: InteractionJournal) -> UnbondingRecord:
        record = self.find(state, account, token_id)
        if not record:
            raise NoSuchUnbondingRecord(f"No unbonding record for token {token_id} of {account}")

        if current_block < record.unlock_block:
            raise UnbondingNotElapsed(
                f"Unbonding period not over: token {token_id} unlocks at block "
                f"{record.unlock_block} (current {current_block})"
            )

        state.set_unbonding(account, [r for r in state.get_unbonding(account) if r.token_id != token_id])
        journal.add(CustodyTransfer(self.custody, self.contract_address, self.contract_address, account, token_id))

        logger.info(f"Withdrew token {token_id} to {account} at block {current_block}")
        return record

    def pending_of(self, state: LedgerState, account: str) -> List[UnbondingRecord]:
        return list(state.get_unbonding(account))
