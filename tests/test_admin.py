import pytest
from conftest import (
    E18, OWNER, ADDR1, CONTRACT, START_BLOCK, REWARD_PER_BLOCK, UNBONDING_PERIOD, REWARD_CLAIM_DELAY,
    approve_and_stake,
)
from nftstaking.ledger.core.clock import BlockClock
from nftstaking.ledger.core.contract import StakingContract
from nftstaking.ledger.tokens.erc721 import ERC721Collection
from nftstaking.ledger.tokens.erc20 import ERC20Token
from nftstaking.protocol.types.common import (
    AccrualPolicy, NotAuthorized, ValidationError, AlreadyInitialized, NotInitialized, ClaimDelayNotMet,
)


@pytest.fixture
def bare_contract(tmp_path):
    nft = ERC721Collection("TestNFT", "TNFT")
    reward = ERC20Token("RewardToken", "RTKN")
    contract = StakingContract(str(tmp_path / "bare.db"), nft, reward, BlockClock(START_BLOCK), address=CONTRACT)
    yield contract
    contract.close()


def test_initializer_becomes_admin(env):
    assert env.contract.is_initialized
    assert env.contract.admin == OWNER
    params = env.contract.parameters
    assert params.reward_per_block == REWARD_PER_BLOCK
    assert params.unbonding_period == UNBONDING_PERIOD
    assert params.reward_claim_delay == REWARD_CLAIM_DELAY
    assert params.accrual_policy == AccrualPolicy.PER_TOKEN


def test_initialize_only_once(env):
    with pytest.raises(AlreadyInitialized):
        env.contract.initialize(ADDR1, env.nft.address, env.reward.address, 1, 1, 1)
    assert env.contract.admin == OWNER


def test_calls_rejected_before_initialize(bare_contract):
    with pytest.raises(NotInitialized):
        bare_contract.stake(ADDR1, [1])
    with pytest.raises(NotInitialized):
        bare_contract.claim_rewards(ADDR1)
    assert bare_contract.pending_reward(ADDR1) == 0


def test_initialize_checks_collaborators_and_values(bare_contract):
    with pytest.raises(ValidationError):
        bare_contract.initialize(OWNER, "0x" + "ee" * 20, bare_contract.reward_token.address, 1, 1, 1)
    with pytest.raises(ValidationError):
        bare_contract.initialize(OWNER, bare_contract.nft.address, bare_contract.reward_token.address, -1, 1, 1)
    assert not bare_contract.is_initialized


@pytest.mark.parametrize("setter", ["set_reward_per_block", "set_unbonding_period", "set_reward_claim_delay"])
def test_setters_are_admin_only(env, setter):
    before = env.contract.parameters

    with pytest.raises(NotAuthorized):
        getattr(env.contract, setter)(ADDR1, 3)

    assert env.contract.parameters == before


@pytest.mark.parametrize("setter", ["set_reward_per_block", "set_unbonding_period", "set_reward_claim_delay"])
def test_setters_reject_negative_values(env, setter):
    with pytest.raises(ValidationError):
        getattr(env.contract, setter)(OWNER, -1)


def test_setters_return_previous_value(env):
    assert env.contract.set_reward_per_block(OWNER, 3 * E18) == REWARD_PER_BLOCK
    assert env.contract.set_unbonding_period(OWNER, 20) == UNBONDING_PERIOD
    assert env.contract.set_reward_claim_delay(OWNER, 0) == REWARD_CLAIM_DELAY

    params = env.contract.parameters
    assert (params.reward_per_block, params.unbonding_period, params.reward_claim_delay) == (3 * E18, 20, 0)


def test_reward_rate_change_takes_effect(env):
    approve_and_stake(env, ADDR1, [1])
    env.contract.set_reward_per_block(OWNER, 0)
    env.clock.mine(10)

    assert env.contract.pending_reward(ADDR1) == 0
    assert env.contract.claim_rewards(ADDR1) == 0
    assert env.reward.balance_of(ADDR1) == 0


def test_claim_delay_change_takes_effect(env):
    approve_and_stake(env, ADDR1, [1])
    env.contract.set_reward_claim_delay(OWNER, 20)
    env.clock.mine(REWARD_CLAIM_DELAY)

    with pytest.raises(ClaimDelayNotMet):
        env.contract.claim_rewards(ADDR1)

    env.contract.set_reward_claim_delay(OWNER, 0)
    assert env.contract.claim_rewards(ADDR1) == REWARD_CLAIM_DELAY * E18


def test_unbonding_change_applies_to_future_unstakes_only(env):
    approve_and_stake(env, ADDR1, [1, 2])
    env.contract.unstake(ADDR1, [1])
    env.contract.set_unbonding_period(OWNER, 2 * UNBONDING_PERIOD)
    env.contract.unstake(ADDR1, [2])

    unlocks = {u.token_id: u.unlock_block for u in env.contract.unbonding_of(ADDR1)}
    assert unlocks == {1: START_BLOCK + UNBONDING_PERIOD, 2: START_BLOCK + 2 * UNBONDING_PERIOD}

    env.clock.mine(UNBONDING_PERIOD)
    env.contract.withdraw(ADDR1, 1)
    assert env.nft.owner_of(1) == ADDR1
