import pytest
from types import SimpleNamespace
from nftstaking.ledger.core.clock import BlockClock
from nftstaking.ledger.core.contract import StakingContract
from nftstaking.ledger.tokens.erc721 import ERC721Collection
from nftstaking.ledger.tokens.erc20 import ERC20Token
from nftstaking.protocol.types.call import Call
from nftstaking.protocol.types.common import AccrualPolicy
from nftstaking.protocol.crypto.keys import address_from_private, public_key_from_private

E18 = 10**18
OWNER_KEY = bytes([0x01] * 32)
KEY1 = bytes([0x11] * 32)
KEY2 = bytes([0x22] * 32)
OWNER = address_from_private(OWNER_KEY)
ADDR1 = address_from_private(KEY1)
ADDR2 = address_from_private(KEY2)
CONTRACT = "0x" + "5c" * 20
START_BLOCK = 100

REWARD_PER_BLOCK = 1 * E18
UNBONDING_PERIOD = 10
REWARD_CLAIM_DELAY = 5


def deploy(db_path: str, policy: AccrualPolicy = AccrualPolicy.PER_TOKEN, funding: int = 1000 * E18):
    """Mock collection + reward token, contract initialized by OWNER, tokens 1 and 2 minted to ADDR1."""
    nft = ERC721Collection("TestNFT", "TNFT")
    reward = ERC20Token("RewardToken", "RTKN", initial_holder=OWNER, initial_supply=10_000 * E18)
    clock = BlockClock(START_BLOCK)

    contract = StakingContract(db_path, nft, reward, clock, address=CONTRACT)
    contract.initialize(OWNER, nft.address, reward.address,
                        REWARD_PER_BLOCK, UNBONDING_PERIOD, REWARD_CLAIM_DELAY, policy)

    nft.mint(ADDR1, 1)
    nft.mint(ADDR1, 2)
    if funding:
        reward.transfer(OWNER, CONTRACT, funding)

    return SimpleNamespace(contract=contract, nft=nft, reward=reward, clock=clock, db_path=db_path)


def signed_call(call_type, key: bytes, token_ids=(), value=None, nonce=0, sender=None) -> Call:
    """Call signed with `key`; `sender` defaults to the key's own address."""
    call = Call(
        call_type=call_type,
        sender=sender or address_from_private(key),
        token_ids=list(token_ids),
        value=value,
        nonce=nonce,
        pub_key=public_key_from_private(key).hex(),
    )
    return call.sign(key)


def approve_and_stake(env, account, token_ids):
    for token_id in token_ids:
        env.nft.approve(account, CONTRACT, token_id)
    return env.contract.stake(account, token_ids)


@pytest.fixture
def env(tmp_path):
    deployment = deploy(str(tmp_path / "ledger.db"))
    yield deployment
    deployment.contract.close()


@pytest.fixture
def flat_env(tmp_path):
    deployment = deploy(str(tmp_path / "ledger.db"), policy=AccrualPolicy.PER_ACCOUNT)
    yield deployment
    deployment.contract.close()
