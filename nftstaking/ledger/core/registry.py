"""
Stake registry: entry and exit point for stake and unstake requests.
"""
from typing import List, Sequence
import logging
from ...protocol.types.stake import StakeRecord
from ...protocol.types.common import (
    TokenState, ValidationError, NotOwner, AlreadyStaked, NotStakedByCaller, NoSuchStake,
)
from ..tokens.interfaces import TokenCustody, TokenError
from .state import LedgerState
from .interactions import InteractionJournal, CustodyTransfer
from .unbonding import UnbondingQueue

logger = logging.getLogger(__name__)


def validate_token_ids(token_ids: Sequence[int]) -> List[int]:
    ids = list(token_ids)
    if not ids:
        raise ValidationError("At least one token id is required")
    if len(set(ids)) != len(ids):
        raise ValidationError(f"Duplicate token ids in request: {ids}")
    for token_id in ids:
        if not isinstance(token_id, int) or isinstance(token_id, bool) or token_id < 0:
            raise ValidationError(f"Invalid token id: {token_id!r}")
    return ids


class StakeRegistry:
    def __init__(self, custody: TokenCustody, contract_address: str, unbonding: UnbondingQueue):
        self.custody = custody
        self.contract_address = contract_address
        self.unbonding = unbonding

    def stake(self, state: LedgerState, account: str, token_ids: Sequence[int],
              current_block: int, journal: InteractionJournal) -> List[StakeRecord]:
        ids = validate_token_ids(token_ids)

        # 1. Preconditions for every id before touching the ledger
        for token_id in ids:
            if state.token_state(token_id) != TokenState.UNSTAKED:
                raise AlreadyStaked(f"Token {token_id} is already staked")
            try:
                holder = self.custody.owner_of(token_id)
            except TokenError as e:
                raise NotOwner(f"Token {token_id} cannot be staked by {account}: {e}") from e
            if holder != account:
                raise NotOwner(f"Token {token_id} is not owned by {account}")

        # 2. Effects
        records = list(state.get_stakes(account))
        new_records = [
            StakeRecord(
                token_id=token_id,
                owner=account,
                stake_block=current_block,
                last_claim_block=current_block,
            )
            for token_id in ids
        ]
        records.extend(new_records)
        state.set_stakes(account, records)

        # 3. Interactions (run by the contract after commit)
        for token_id in ids:
            journal.add(CustodyTransfer(self.custody, self.contract_address, account, self.contract_address, token_id))

        logger.info(f"Staked {ids} for {account} at block {current_block}")
        return new_records

    def unstake(self, state: LedgerState, account: str, token_ids: Sequence[int],
                current_block: int, unbonding_period: int) -> None:
        ids = validate_token_ids(token_ids)

        records = state.get_stakes(account)
        staked_ids = {r.token_id for r in records}
        for token_id in ids:
            if token_id not in staked_ids:
                raise NotStakedByCaller(f"Token {token_id} is not staked by {account}")

        # Accrual on the removed records since their last claim is forfeited, not settled
        # Remaining records keep their relative order
        remaining = [r for r in records if r.token_id not in ids]
        state.set_stakes(account, remaining)
        for token_id in ids:
            self.unbonding.enqueue(state, account, token_id, current_block, unbonding_period)

        logger.info(
            f"Unstaked {ids} for {account} at block {current_block}; "
            f"withdrawable from block {current_block + unbonding_period}"
        )

    def stakes_of(self, state: LedgerState, account: str) -> List[StakeRecord]:
        return list(state.get_stakes(account))

    def stake_at(self, state: LedgerState, account: str, index: int) -> StakeRecord:
        records = state.get_stakes(account)
        if index < 0 or index >= len(records):
            raise NoSuchStake(f"No stake at index {index} for {account} ({len(records)} active)")
        return records[index]
