from pydantic import BaseModel, Field, field_validator
from typing import List
from .common import AccrualPolicy

class StakeRecord(BaseModel):
    """An active stake of one token."""
    token_id: int
    owner: str              # Account that staked the token
    stake_block: int        # Block height at stake time
    last_claim_block: int   # Block height of the most recent reward settlement

class UnbondingRecord(BaseModel):
    """A token waiting out the unbonding period after unstake."""
    token_id: int
    owner: str
    unstake_block: int      # Block height when unstake was requested
    unlock_block: int       # unstake_block + unbonding_period at request time

class Parameters(BaseModel):
    reward_per_block: int                   # Reward-token units per block (per token under PER_TOKEN)
    unbonding_period: int                   # Blocks between unstake and withdraw
    reward_claim_delay: int                 # Blocks between stake and first eligible claim
    accrual_policy: AccrualPolicy = AccrualPolicy.PER_TOKEN

    @field_validator("reward_per_block", "unbonding_period", "reward_claim_delay")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

class AccountPosition(BaseModel):
    """Read model: everything the ledger knows about one account."""
    account: str
    current_block: int
    stakes: List[StakeRecord] = Field(default_factory=list)
    unbonding: List[UnbondingRecord] = Field(default_factory=list)
    pending_reward: int = 0
