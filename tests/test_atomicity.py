# MIT License
# Copyright (c) 2025 Hashborn

"""
Atomicity Tests

A call either applies completely or not at all:
1. A failed token transfer leaves the ledger (and its state root) untouched
2. Custody pulls already made in a failed batch are returned
3. Calls cannot re-enter the contract
4. Events and receipts only reflect committed calls
5. Custody always matches the ledger, under random call sequences
"""

import random
import pytest
from conftest import (
    E18, OWNER, ADDR1, ADDR2, KEY1, KEY2, CONTRACT, START_BLOCK, UNBONDING_PERIOD,
    deploy, approve_and_stake, signed_call,
)
from nftstaking.ledger.core.contract import StakingContract
from nftstaking.ledger.core.events import STAKED, REWARD_PAID, INITIALIZED
from nftstaking.ledger.tokens.erc721 import ERC721Collection
from nftstaking.protocol.types.call import Call
from nftstaking.protocol.types.common import (
    CallType, TokenState, ProtocolError, TransferFailed, ReentrantCall, NoStakes, ValidationError,
    InvalidSignature, DuplicateCall,
)


@pytest.fixture
def unfunded_env(tmp_path):
    deployment = deploy(str(tmp_path / "unfunded.db"), funding=0)
    yield deployment
    deployment.contract.close()


def test_underfunded_claim_rolls_back(unfunded_env):
    env = unfunded_env
    approve_and_stake(env, ADDR1, [1])
    env.clock.mine(10)
    root_before = env.contract.state.compute_state_root()

    with pytest.raises(TransferFailed):
        env.contract.claim_rewards(ADDR1)

    assert env.contract.state.compute_state_root() == root_before
    assert env.contract.stake_at(ADDR1, 0).last_claim_block == START_BLOCK
    assert env.contract.pending_reward(ADDR1) == 10 * E18
    assert env.contract.state.meta.total_reward_paid == 0

    # Once funded, the same claim goes through
    env.reward.transfer(OWNER, CONTRACT, 100 * E18)
    assert env.contract.claim_rewards(ADDR1) == 10 * E18


def test_failed_batch_returns_pulled_tokens(env):
    env.nft.approve(ADDR1, CONTRACT, 1)  # token 2 not approved
    root_before = env.contract.state.compute_state_root()

    with pytest.raises(TransferFailed):
        env.contract.stake(ADDR1, [1, 2])

    assert env.nft.owner_of(1) == ADDR1
    assert env.nft.owner_of(2) == ADDR1
    assert env.contract.stakes_of(ADDR1) == []
    assert env.contract.token_state(1) == TokenState.UNSTAKED
    assert env.contract.state.compute_state_root() == root_before


def test_failed_transfer_is_not_persisted(tmp_path):
    db_path = str(tmp_path / "ledger.db")
    env = deploy(db_path, funding=0)
    approve_and_stake(env, ADDR1, [1])
    env.clock.mine(10)
    with pytest.raises(TransferFailed):
        env.contract.claim_rewards(ADDR1)
    env.contract.close()

    reloaded = StakingContract(db_path, env.nft, env.reward, env.clock, address=CONTRACT)
    assert reloaded.stake_at(ADDR1, 0).last_claim_block == START_BLOCK
    reloaded.close()


class ReenteringCollection(ERC721Collection):
    """Calls back into the staking contract from inside transfer_from."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.contract = None
        self.reentry_errors = []

    def transfer_from(self, caller, from_addr, to_addr, token_id):
        if self.contract is not None:
            try:
                self.contract.claim_rewards(from_addr)
            except ProtocolError as e:
                self.reentry_errors.append(e)
        return super().transfer_from(caller, from_addr, to_addr, token_id)


def test_reentrant_call_is_rejected(tmp_path, env):
    nft = ReenteringCollection("Evil", "EVL")
    contract = StakingContract(str(tmp_path / "evil.db"), nft, env.reward, env.clock, address=CONTRACT)
    contract.initialize(OWNER, nft.address, env.reward.address, E18, UNBONDING_PERIOD, 0)
    nft.mint(ADDR1, 1)
    nft.approve(ADDR1, CONTRACT, 1)
    nft.contract = contract

    contract.stake(ADDR1, [1])

    assert len(nft.reentry_errors) == 1
    assert isinstance(nft.reentry_errors[0], ReentrantCall)
    assert contract.token_state(1) == TokenState.STAKED
    assert env.reward.balance_of(ADDR1) == 0
    contract.close()


def test_state_survives_restart(env):
    approve_and_stake(env, ADDR1, [1, 2])
    env.contract.unstake(ADDR1, [2])
    env.clock.mine(3)
    root = env.contract.state.compute_state_root()
    env.contract.close()

    reloaded = StakingContract(env.db_path, env.nft, env.reward, env.clock, address=CONTRACT)
    assert reloaded.is_initialized
    assert reloaded.admin == OWNER
    assert reloaded.state.compute_state_root() == root
    assert [s.token_id for s in reloaded.stakes_of(ADDR1)] == [1]
    assert reloaded.token_state(2) == TokenState.UNBONDING
    assert reloaded.pending_reward(ADDR1) == 3 * E18

    # Fixture teardown closes env.contract again; point it at the live instance
    env.contract = reloaded


def test_restart_with_other_collection_is_rejected(env):
    env.contract.close()
    other = ERC721Collection("Other", "OTH")

    with pytest.raises(ValidationError):
        StakingContract(env.db_path, other, env.reward, env.clock, address=CONTRACT)

    env.contract = StakingContract(env.db_path, env.nft, env.reward, env.clock, address=CONTRACT)


def test_events_only_for_committed_calls(unfunded_env):
    env = unfunded_env
    seen = []

    def on_staked(block, account, token_ids):
        # Listeners observe the committed ledger and completed custody
        seen.append((STAKED, block, env.contract.token_state(token_ids[0]), env.nft.owner_of(token_ids[0])))

    def on_reward(block, account, amount):
        seen.append((REWARD_PAID, block, amount))

    env.contract.events.subscribe(STAKED, on_staked)
    env.contract.events.subscribe(REWARD_PAID, on_reward)

    with pytest.raises(TransferFailed):
        env.contract.stake(ADDR1, [1])  # not approved
    approve_and_stake(env, ADDR1, [1])
    env.clock.mine(10)
    with pytest.raises(TransferFailed):
        env.contract.claim_rewards(ADDR1)  # unfunded

    assert seen == [(STAKED, START_BLOCK, TokenState.STAKED, CONTRACT)]
    assert [e.name for e in env.contract.events.recent()] == [INITIALIZED, STAKED]
    assert env.contract.events.recent(account=ADDR1)[0].data["token_ids"] == [1]


def test_apply_call_records_receipts(env):
    env.nft.approve(ADDR1, CONTRACT, 1)
    call = signed_call(CallType.STAKE, KEY1, [1], nonce=7)

    receipt = env.contract.apply_call(call)

    assert receipt.ok
    assert receipt.call_hash == call.hash()
    assert receipt.block_height == START_BLOCK
    assert receipt.result == {"token_ids": [1]}

    bad = signed_call(CallType.CLAIM_REWARDS, KEY2, nonce=1)
    with pytest.raises(NoStakes):
        env.contract.apply_call(bad)

    failed = env.contract.receipts.get(bad.hash())
    assert failed.status == "failed"
    assert failed.error_code == "NoStakes"
    assert [row[1] for row in env.contract.db.get_calls(bad.hash())] == ["failed"]


def test_withdraw_call_takes_exactly_one_token(env):
    with pytest.raises(ValidationError):
        env.contract.apply_call(signed_call(CallType.WITHDRAW, KEY1, [1, 2]))


def test_apply_call_requires_sender_signature(env):
    env.nft.approve(ADDR1, CONTRACT, 1)

    unsigned = Call(call_type=CallType.STAKE, sender=ADDR1, token_ids=[1])
    with pytest.raises(InvalidSignature):
        env.contract.apply_call(unsigned)

    # ADDR2 signs a call claiming to come from ADDR1
    forged = signed_call(CallType.STAKE, KEY2, [1], sender=ADDR1)
    with pytest.raises(InvalidSignature):
        env.contract.apply_call(forged)

    # Changing a signed field invalidates the signature
    tampered = signed_call(CallType.STAKE, KEY1, [1])
    tampered.token_ids = [2]
    with pytest.raises(InvalidSignature):
        env.contract.apply_call(tampered)

    assert env.contract.stakes_of(ADDR1) == []
    assert env.nft.owner_of(1) == ADDR1
    assert env.contract.receipts.get(forged.hash()).error_code == "InvalidSignature"


def test_confirmed_call_cannot_be_replayed(env):
    env.nft.approve(ADDR1, CONTRACT, 1)
    stake = signed_call(CallType.STAKE, KEY1, [1], nonce=1)
    env.contract.apply_call(stake)
    env.contract.apply_call(signed_call(CallType.UNSTAKE, KEY1, [1], nonce=2))
    env.clock.mine(UNBONDING_PERIOD)
    env.contract.apply_call(signed_call(CallType.WITHDRAW, KEY1, [1], nonce=3))

    env.nft.approve(ADDR1, CONTRACT, 1)
    with pytest.raises(DuplicateCall):
        env.contract.apply_call(stake)
    assert env.contract.stakes_of(ADDR1) == []

    # A failed call may be resubmitted once its precondition holds
    claim = signed_call(CallType.CLAIM_REWARDS, KEY1, nonce=4)
    with pytest.raises(NoStakes):
        env.contract.apply_call(claim)
    env.contract.apply_call(signed_call(CallType.STAKE, KEY1, [1], nonce=5))
    env.clock.mine(5)
    assert env.contract.apply_call(claim).ok


def assert_custody_matches_ledger(env, token_ids, accounts):
    state = env.contract.state
    for token_id in token_ids:
        holder = env.nft.owner_of(token_id)
        if env.contract.token_state(token_id) == TokenState.UNSTAKED:
            assert holder != CONTRACT
            assert state.token_owner(token_id) is None
        else:
            assert holder == CONTRACT
            assert state.token_owner(token_id) in accounts

    held = [t for t in token_ids if env.nft.owner_of(t) == CONTRACT]
    assert len(held) == state.count_staked() + state.count_unbonding()


@pytest.mark.parametrize("seed", [1, 7, 42, 1337])
def test_custody_consistency_under_random_calls(tmp_path, seed):
    rng = random.Random(seed)
    funding = 50 * E18
    env = deploy(str(tmp_path / f"random_{seed}.db"), funding=funding)
    accounts = [ADDR1, ADDR2]
    token_ids = [1, 2, 3, 4, 5, 6]
    for token_id in token_ids[2:]:
        env.nft.mint(ADDR2, token_id)

    for _ in range(150):
        account = rng.choice(accounts)
        op = rng.choice(["stake", "unstake", "withdraw", "claim", "mine"])
        try:
            if op == "stake":
                owned = [t for t in token_ids if env.nft.owner_of(t) == account]
                if not owned:
                    continue
                batch = rng.sample(owned, rng.randint(1, len(owned)))
                for token_id in batch:
                    if rng.random() < 0.8:
                        env.nft.approve(account, CONTRACT, token_id)
                env.contract.stake(account, batch)
            elif op == "unstake":
                staked = [s.token_id for s in env.contract.stakes_of(account)]
                batch = rng.sample(staked, rng.randint(1, len(staked))) if staked else [rng.choice(token_ids)]
                env.contract.unstake(account, batch)
            elif op == "withdraw":
                unbonding = env.contract.unbonding_of(account)
                token_id = rng.choice(unbonding).token_id if unbonding else rng.choice(token_ids)
                env.contract.withdraw(account, token_id)
            elif op == "claim":
                env.contract.claim_rewards(account)
            else:
                env.clock.mine(rng.randint(1, 6))
        except ProtocolError:
            pass

        assert_custody_matches_ledger(env, token_ids, accounts)
        paid = sum(env.reward.balance_of(a) for a in accounts)
        assert paid == env.contract.state.meta.total_reward_paid
        assert env.reward.balance_of(CONTRACT) + paid == funding

    env.contract.close()
