"""
Reward accrual.

Rewards are computed lazily: nothing is stored per block, each stake record
only remembers the block of its last settlement, and the amount owed is
rate x elapsed blocks evaluated with the rate in force at query/claim time.
"""
from typing import List, Tuple
import logging
from ...protocol.types.stake import StakeRecord, Parameters
from ...protocol.types.common import AccrualPolicy, ClaimDelayNotMet, NoStakes
from ..tokens.interfaces import RewardSource
from .state import LedgerState
from .interactions import InteractionJournal, RewardTransfer

logger = logging.getLogger(__name__)


def accrued_per_token(records: List[StakeRecord], reward_per_block: int, current_block: int) -> int:
    """Every record accrues the full rate over its own window."""
    return sum(reward_per_block * (current_block - r.last_claim_block) for r in records)


def accrued_per_account(records: List[StakeRecord], reward_per_block: int, current_block: int) -> int:
    """The position accrues the rate once, from its oldest unsettled block."""
    if not records:
        return 0
    oldest = min(r.last_claim_block for r in records)
    return reward_per_block * (current_block - oldest)


ACCRUAL_FUNCTIONS = {
    AccrualPolicy.PER_TOKEN: accrued_per_token,
    AccrualPolicy.PER_ACCOUNT: accrued_per_account,
}


def is_claimable(record: StakeRecord, reward_claim_delay: int, current_block: int) -> bool:
    return current_block >= record.stake_block + reward_claim_delay


class RewardAccrualEngine:
    def __init__(self, reward_source: RewardSource, contract_address: str):
        self.reward_source = reward_source
        self.contract_address = contract_address

    def pending_reward(self, state: LedgerState, account: str, current_block: int) -> int:
        params = state.parameters
        if params is None:
            return 0
        records = state.get_stakes(account)
        return ACCRUAL_FUNCTIONS[params.accrual_policy](records, params.reward_per_block, current_block)

    def claimable_records(self, params: Parameters, records: List[StakeRecord], current_block: int) -> List[StakeRecord]:
        return [r for r in records if is_claimable(r, params.reward_claim_delay, current_block)]

    def settle(self, state: LedgerState, account: str, current_block: int) -> Tuple[int, List[int]]:
        """
        Computes what the account may claim now and advances the settled records.

        Under PER_TOKEN only records past the claim delay are paid and reset, so
        pending_reward can stay above zero after a successful claim while younger
        records are still inside their delay.

        Returns (amount, settled token ids). Raises NoStakes or ClaimDelayNotMet.
        """
        params = state.parameters
        records = state.get_stakes(account)
        if not records:
            raise NoStakes(f"{account} has no active stakes")

        qualifying = self.claimable_records(params, records, current_block)
        if not qualifying:
            first_eligible = min(r.stake_block for r in records) + params.reward_claim_delay
            raise ClaimDelayNotMet(
                f"Claim delay not met: first claim allowed at block {first_eligible} (current {current_block})"
            )

        if params.accrual_policy == AccrualPolicy.PER_ACCOUNT:
            # One shared window for the whole position
            amount = accrued_per_account(records, params.reward_per_block, current_block)
            settled = records
        else:
            amount = accrued_per_token(qualifying, params.reward_per_block, current_block)
            settled = qualifying

        settled_ids = {r.token_id for r in settled}
        updated = [
            r.model_copy(update={"last_claim_block": current_block}) if r.token_id in settled_ids else r
            for r in records
        ]
        state.set_stakes(account, updated)
        return amount, [r.token_id for r in settled]

    def claim(self, state: LedgerState, account: str, current_block: int, journal: InteractionJournal) -> int:
        amount, settled_ids = self.settle(state, account, current_block)

        if amount > 0:
            journal.add(RewardTransfer(self.reward_source, self.contract_address, account, amount))
            state.meta.total_reward_paid += amount

        logger.info(f"Claimed {amount} for {account} over tokens {settled_ids} at block {current_block}")
        return amount
