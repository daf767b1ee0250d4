# MIT License
# Copyright (c) 2025 Hashborn

from typing import Optional, List, Dict, Any, Callable, Sequence, Tuple
import itertools
import logging
import threading
from ...protocol.types.call import Call
from ...protocol.types.stake import StakeRecord, UnbondingRecord, Parameters, AccountPosition
from ...protocol.types.common import (
    CallType, TokenState, AccrualPolicy, ADMIN_CALLS,
    ProtocolError, ValidationError, TransferFailed,
    AlreadyInitialized, NotInitialized, ReentrantCall, InvalidSignature, DuplicateCall,
)
from ...protocol.config.params import CURRENT_NETWORK
from ..storage.db import StorageDB
from ..tokens.interfaces import TokenCustody, RewardSource
from ..observability import metrics
from .clock import BlockClock
from .state import LedgerState
from .registry import StakeRegistry
from .unbonding import UnbondingQueue
from .rewards import RewardAccrualEngine
from .admin import ParameterAdmin
from .interactions import InteractionJournal
from .events import EventBus, STAKED, UNSTAKED, WITHDRAWN, REWARD_PAID, PARAMETER_UPDATED, INITIALIZED
from .receipt import CallReceipt, CallReceiptStore, CONFIRMED, FAILED

logger = logging.getLogger(__name__)

# (return value, receipt result, events to emit after commit)
Outcome = Tuple[Any, Dict[str, Any], List[Tuple[str, Dict[str, Any]]]]

BLOCK_HEIGHT_KEY = "block_height"

SETTER_PARAMETER = {
    CallType.SET_REWARD_PER_BLOCK: "reward_per_block",
    CallType.SET_UNBONDING_PERIOD: "unbonding_period",
    CallType.SET_REWARD_CLAIM_DELAY: "reward_claim_delay",
}


class StakingContract:
    """
    Custodial NFT staking contract.

    Every mutating call is executed as a command: preconditions are checked and
    effects applied on a clone of the ledger, the clone is committed, and only
    then are the queued token transfers run. A failed transfer restores the
    previous ledger and aborts the call with TransferFailed.
    """

    def __init__(self, db_path: str, nft: TokenCustody, reward_token: RewardSource, clock: BlockClock,
                 address: str = None, events: Optional[EventBus] = None):
        self.db = StorageDB(db_path)
        self.address = address or CURRENT_NETWORK.contract_address
        self.nft = nft
        self.reward_token = reward_token
        self.clock = clock
        self.events = events or EventBus()
        self.receipts = CallReceiptStore()

        self._lock = threading.RLock()
        self._executing = False
        self._nonces = itertools.count(self.db.count_calls())

        self.state = LedgerState(self.db)
        self.state.load()
        if self.state.meta.initialized:
            self._check_collaborators(self.state.meta.nft_address, self.state.meta.reward_token_address)

        # Blocks mined without any call still count: resume from the highest known height
        resume_height = max(self.state.meta.last_block, int(self.db.get_state(BLOCK_HEIGHT_KEY) or 0))
        if resume_height > self.clock.height:
            self.clock.advance_to(resume_height)
            logger.info(f"Block clock resumed at {resume_height}")

        self.unbonding = UnbondingQueue(nft, self.address)
        self.registry = StakeRegistry(nft, self.address, self.unbonding)
        self.rewards = RewardAccrualEngine(reward_token, self.address)
        self.admin_role = ParameterAdmin()

    @property
    def current_block(self) -> int:
        return self.clock.height

    def _check_collaborators(self, nft_address: str, reward_token_address: str):
        if nft_address != self.nft.address:
            raise ValidationError(f"Collection address mismatch: deployed for {nft_address}, got {self.nft.address}")
        if reward_token_address != self.reward_token.address:
            raise ValidationError(
                f"Reward token address mismatch: deployed for {reward_token_address}, got {self.reward_token.address}"
            )

    # --- Execution core ---
    def _execute(self, fn: Callable[[LedgerState, int, InteractionJournal], Any]) -> Any:
        with self._lock:
            if self._executing:
                raise ReentrantCall("Contract is already executing a call")
            self._executing = True
            try:
                block = self.current_block
                previous = self.state
                tmp_state = previous.clone()
                journal = InteractionJournal()

                # 1. Checks + effects on the clone
                result = fn(tmp_state, block, journal)
                tmp_state.meta.last_block = max(tmp_state.meta.last_block, block)

                # 2. Commit effects before any external call
                self.state = tmp_state

                # 3. Interactions
                try:
                    journal.run()
                except TransferFailed:
                    self.state = previous
                    logger.warning(f"Rolled back call at block {block}: token transfer failed")
                    raise

                # 4. Persist
                self.state.persist()
                return result
            finally:
                self._executing = False

    def _authenticate(self, call: Call, call_hash: str):
        reason = call.verify_sender()
        if reason:
            raise InvalidSignature(f"Call from {call.sender} not authenticated: {reason}")
        if any(status == CONFIRMED for _, status, _ in self.db.get_calls(call_hash)):
            raise DuplicateCall(f"Call {call_hash[:16]} was already executed")

    def _run(self, call: Call, authenticate: bool = False) -> Any:
        call_hash = call.hash()
        block = self.current_block
        try:
            if authenticate:
                self._authenticate(call, call_hash)
            if not self.state.meta.initialized:
                raise NotInitialized("Contract is not initialized")
            value, result, events = self._execute(lambda state, blk, journal: self._apply(call, state, blk, journal))
        except Exception as e:
            code = getattr(e, "code", "InternalError")
            self.receipts.record(CallReceipt(call_hash, FAILED, block, error=str(e), error_code=code))
            self.db.save_call(call_hash, block, FAILED, call.model_dump_json())
            metrics.record_call(call.call_type.name, FAILED, code)
            if isinstance(e, ProtocolError):
                logger.warning(f"{call.call_type.value} from {call.sender} rejected: {code}: {e}")
            else:
                logger.error(f"{call.call_type.value} from {call.sender} crashed: {e}", exc_info=True)
            raise

        self.receipts.record(CallReceipt(call_hash, CONFIRMED, block, result=result))
        self.db.save_call(call_hash, block, CONFIRMED, call.model_dump_json())
        metrics.record_call(call.call_type.name, CONFIRMED)
        for event_type, data in events:
            self.events.emit(event_type, block=block, **data)
        return value

    def _apply(self, call: Call, state: LedgerState, block: int, journal: InteractionJournal) -> Outcome:
        sender = call.sender

        if call.call_type == CallType.STAKE:
            records = self.registry.stake(state, sender, call.token_ids, block, journal)
            ids = [r.token_id for r in records]
            return records, {"token_ids": ids}, [(STAKED, {"account": sender, "token_ids": ids})]

        elif call.call_type == CallType.UNSTAKE:
            self.registry.unstake(state, sender, call.token_ids, block, state.parameters.unbonding_period)
            records = [self.unbonding.find(state, sender, t) for t in call.token_ids]
            unlock = {r.token_id: r.unlock_block for r in records}
            return records, {"unlock_blocks": unlock}, [
                (UNSTAKED, {"account": sender, "token_ids": list(call.token_ids), "unlock_blocks": unlock})
            ]

        elif call.call_type == CallType.WITHDRAW:
            if len(call.token_ids) != 1:
                raise ValidationError("WITHDRAW takes exactly one token id")
            token_id = call.token_ids[0]
            record = self.unbonding.withdraw(state, sender, token_id, block, journal)
            return record, {"token_id": token_id}, [(WITHDRAWN, {"account": sender, "token_id": token_id})]

        elif call.call_type == CallType.CLAIM_REWARDS:
            amount = self.rewards.claim(state, sender, block, journal)
            return amount, {"amount": amount}, [(REWARD_PAID, {"account": sender, "amount": amount})]

        elif call.call_type in ADMIN_CALLS:
            if call.value is None:
                raise ValidationError(f"{call.call_type.value} requires a value")
            name = SETTER_PARAMETER[call.call_type]
            old = self.admin_role.set_parameter(state, sender, name, call.value)
            return old, {"parameter": name, "old": old, "new": call.value}, [
                (PARAMETER_UPDATED, {"parameter": name, "old": old, "new": call.value, "caller": sender})
            ]

        raise ValidationError(f"Unsupported call type {call.call_type}")

    # --- Initialization ---
    def initialize(self, caller: str, nft_address: str, reward_token_address: str,
                   reward_per_block: int, unbonding_period: int, reward_claim_delay: int,
                   accrual_policy: AccrualPolicy = AccrualPolicy.PER_TOKEN) -> Parameters:
        """
        One-time setup. The caller becomes the administrator.
        """
        def _init(state: LedgerState, block: int, journal: InteractionJournal) -> Parameters:
            if state.meta.initialized:
                raise AlreadyInitialized("Contract is already initialized")
            self._check_collaborators(nft_address, reward_token_address)
            for name, value in (("reward_per_block", reward_per_block),
                                ("unbonding_period", unbonding_period),
                                ("reward_claim_delay", reward_claim_delay)):
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")

            state.parameters = Parameters(
                reward_per_block=reward_per_block,
                unbonding_period=unbonding_period,
                reward_claim_delay=reward_claim_delay,
                accrual_policy=AccrualPolicy(accrual_policy),
            )
            state.meta.admin = caller
            state.meta.nft_address = nft_address
            state.meta.reward_token_address = reward_token_address
            state.meta.initialized = True
            return state.parameters

        params = self._execute(_init)
        logger.info(
            f"Staking contract {self.address[:10]} initialized by {caller}: "
            f"reward_per_block={params.reward_per_block}, unbonding_period={params.unbonding_period}, "
            f"reward_claim_delay={params.reward_claim_delay}, policy={params.accrual_policy.value}"
        )
        self.events.emit(INITIALIZED, block=self.current_block, admin=caller, parameters=params.model_dump())
        return params

    # --- Mutating operations ---
    def _call(self, call_type: CallType, sender: str, token_ids: Sequence[int] = (), value: int = None) -> Any:
        call = Call(call_type=call_type, sender=sender, token_ids=list(token_ids), value=value, nonce=next(self._nonces))
        return self._run(call)

    def apply_call(self, call: Call) -> CallReceipt:
        """
        Executes an externally submitted call.

        The call must be signed by the key its sender address derives from, and a
        confirmed call cannot be replayed. Raises on failure; the failed receipt is
        still recorded.
        """
        self._run(call, authenticate=True)
        return self.receipts.get(call.hash())

    def stake(self, account: str, token_ids: Sequence[int]) -> List[StakeRecord]:
        return self._call(CallType.STAKE, account, token_ids)

    def unstake(self, account: str, token_ids: Sequence[int]) -> List[UnbondingRecord]:
        return self._call(CallType.UNSTAKE, account, token_ids)

    def withdraw(self, account: str, token_id: int) -> UnbondingRecord:
        return self._call(CallType.WITHDRAW, account, [token_id])

    def claim_rewards(self, account: str) -> int:
        return self._call(CallType.CLAIM_REWARDS, account)

    def set_reward_per_block(self, caller: str, value: int) -> int:
        return self._call(CallType.SET_REWARD_PER_BLOCK, caller, value=value)

    def set_unbonding_period(self, caller: str, value: int) -> int:
        return self._call(CallType.SET_UNBONDING_PERIOD, caller, value=value)

    def set_reward_claim_delay(self, caller: str, value: int) -> int:
        return self._call(CallType.SET_REWARD_CLAIM_DELAY, caller, value=value)

    # --- Views ---
    @property
    def is_initialized(self) -> bool:
        return self.state.meta.initialized

    @property
    def admin(self) -> str:
        return self.state.meta.admin

    @property
    def parameters(self) -> Optional[Parameters]:
        return self.state.parameters

    def stakes_of(self, account: str) -> List[StakeRecord]:
        return self.registry.stakes_of(self.state, account)

    def stake_at(self, account: str, index: int) -> StakeRecord:
        return self.registry.stake_at(self.state, account, index)

    def stake_count(self, account: str) -> int:
        return len(self.state.get_stakes(account))

    def unbonding_of(self, account: str) -> List[UnbondingRecord]:
        return self.unbonding.pending_of(self.state, account)

    def pending_reward(self, account: str) -> int:
        return self.rewards.pending_reward(self.state, account, self.current_block)

    def token_state(self, token_id: int) -> TokenState:
        return self.state.token_state(token_id)

    def reward_balance(self) -> int:
        return self.reward_token.balance_of(self.address)

    def account_position(self, account: str) -> AccountPosition:
        return AccountPosition(
            account=account,
            current_block=self.current_block,
            stakes=self.stakes_of(account),
            unbonding=self.unbonding_of(account),
            pending_reward=self.pending_reward(account),
        )

    def checkpoint_height(self) -> int:
        """Persists the current block height so a restart does not rewind the clock."""
        height = self.current_block
        self.db.set_state(BLOCK_HEIGHT_KEY, str(height))
        return height

    def close(self):
        self.db.close()
