# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class CallType(str, Enum):
    STAKE = "STAKE"
    UNSTAKE = "UNSTAKE"
    WITHDRAW = "WITHDRAW"
    CLAIM_REWARDS = "CLAIM_REWARDS"

    # Admin-only parameter setters
    SET_REWARD_PER_BLOCK = "SET_REWARD_PER_BLOCK"
    SET_UNBONDING_PERIOD = "SET_UNBONDING_PERIOD"
    SET_REWARD_CLAIM_DELAY = "SET_REWARD_CLAIM_DELAY"

ADMIN_CALLS = {
    CallType.SET_REWARD_PER_BLOCK,
    CallType.SET_UNBONDING_PERIOD,
    CallType.SET_REWARD_CLAIM_DELAY,
}

class TokenState(str, Enum):
    UNSTAKED = "UNSTAKED"
    STAKED = "STAKED"
    UNBONDING = "UNBONDING"

class AccrualPolicy(str, Enum):
    PER_TOKEN = "PER_TOKEN"      # each staked token accrues reward_per_block
    PER_ACCOUNT = "PER_ACCOUNT"  # flat reward_per_block for the whole position

class ProtocolError(Exception):
    code = "ProtocolError"

class ValidationError(ProtocolError):
    code = "ValidationError"

class StakingError(ProtocolError):
    """Precondition failure of a ledger operation. Nothing was mutated."""
    code = "StakingError"

class NotOwner(StakingError):
    code = "NotOwner"

class AlreadyStaked(StakingError):
    code = "AlreadyStaked"

class NotStakedByCaller(StakingError):
    code = "NotStakedByCaller"

class NoSuchUnbondingRecord(StakingError):
    code = "NoSuchUnbondingRecord"

class UnbondingNotElapsed(StakingError):
    code = "UnbondingNotElapsed"

class ClaimDelayNotMet(StakingError):
    code = "ClaimDelayNotMet"

class NotAuthorized(StakingError):
    code = "NotAuthorized"

class InvalidSignature(NotAuthorized):
    """A submitted call is not signed by the key behind its sender."""
    code = "InvalidSignature"

class DuplicateCall(StakingError):
    code = "DuplicateCall"

class TransferFailed(StakingError):
    code = "TransferFailed"

class AlreadyInitialized(StakingError):
    code = "AlreadyInitialized"

class NotInitialized(StakingError):
    code = "NotInitialized"

class NoStakes(StakingError):
    code = "NoStakes"

class NoSuchStake(StakingError):
    code = "NoSuchStake"

class ReentrantCall(StakingError):
    code = "ReentrantCall"
