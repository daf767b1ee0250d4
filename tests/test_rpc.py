import pytest
from fastapi.testclient import TestClient
from conftest import E18, OWNER, ADDR1, KEY1, OWNER_KEY, CONTRACT, START_BLOCK, UNBONDING_PERIOD, signed_call
from nftstaking.ledger.rpc import api
from nftstaking.protocol.types.common import CallType


@pytest.fixture
def client(env):
    api.contract = env.contract
    yield TestClient(api.app)
    api.contract = None


def send(client, call_type, key, token_ids=(), value=None, nonce=0, sender=None):
    call = signed_call(call_type, key, token_ids, value=value, nonce=nonce, sender=sender)
    return call, client.post("/call/send", json=call.model_dump(mode="json"))


def test_status_and_params(client):
    status = client.get("/status").json()
    assert status["initialized"] is True
    assert status["admin"] == OWNER
    assert status["contract"] == CONTRACT
    assert status["block"] == START_BLOCK
    assert status["reward_balance"] == 1000 * E18

    params = client.get("/params").json()
    assert params["unbonding_period"] == UNBONDING_PERIOD
    assert params["accrual_policy"] == "PER_TOKEN"


def test_stake_through_rpc(client, env):
    env.nft.approve(ADDR1, CONTRACT, 1)

    call, resp = send(client, CallType.STAKE, KEY1, [1], nonce=1)
    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"
    assert resp.json()["call_hash"] == call.hash()

    receipt = client.get(f"/call/{call.hash()}/receipt").json()
    assert receipt["result"] == {"token_ids": [1]}

    stakes = client.get(f"/stakes/{ADDR1}").json()
    assert stakes["count"] == 1
    assert stakes["stakes"][0]["token_id"] == 1
    assert client.get(f"/stakes/{ADDR1}/0").json()["stake_block"] == START_BLOCK
    assert client.get(f"/stakes/{ADDR1}/3").status_code == 404

    token = client.get("/token/1").json()
    assert token == {"token_id": 1, "state": "STAKED", "staker": ADDR1}

    env.clock.mine(4)
    assert client.get(f"/rewards/{ADDR1}").json()["pending_reward"] == 4 * E18

    events = client.get("/events", params={"account": ADDR1}).json()
    assert events == [{"event": "staked", "block": START_BLOCK, "account": ADDR1, "token_ids": [1]}]


def test_rejected_calls_map_to_client_errors(client, env):
    env.nft.approve(ADDR1, CONTRACT, 1)
    send(client, CallType.STAKE, KEY1, [1], nonce=1)

    call, resp = send(client, CallType.CLAIM_REWARDS, KEY1, nonce=2)
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error_code"] == "ClaimDelayNotMet"
    assert detail["call_hash"] == call.hash()
    assert client.get(f"/call/{call.hash()}/receipt").json()["status"] == "failed"

    _, resp = send(client, CallType.SET_REWARD_PER_BLOCK, KEY1, value=5, nonce=3)
    assert resp.status_code == 403
    assert resp.json()["detail"]["error_code"] == "NotAuthorized"

    # Signed by ADDR1 but claiming to be the admin
    _, resp = send(client, CallType.SET_REWARD_PER_BLOCK, KEY1, value=5, nonce=4, sender=OWNER)
    assert resp.status_code == 403
    assert resp.json()["detail"]["error_code"] == "InvalidSignature"
    assert client.get("/params").json()["reward_per_block"] != 5

    _, resp = send(client, CallType.SET_REWARD_PER_BLOCK, OWNER_KEY, value=5, nonce=5)
    assert resp.status_code == 200
    assert client.get("/params").json()["reward_per_block"] == 5

    assert client.get("/call/deadbeef/receipt").status_code == 404


def test_unbonding_view(client, env):
    env.nft.approve(ADDR1, CONTRACT, 1)
    send(client, CallType.STAKE, KEY1, [1], nonce=1)
    send(client, CallType.UNSTAKE, KEY1, [1], nonce=2)
    env.clock.mine(3)

    data = client.get(f"/unbonding/{ADDR1}").json()
    assert data["unbonding_count"] == 1
    entry = data["unbonding"][0]
    assert entry["unlock_block"] == START_BLOCK + UNBONDING_PERIOD
    assert entry["blocks_remaining"] == UNBONDING_PERIOD - 3
    assert entry["withdrawable"] is False


def test_metrics_endpoint(client):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "nftstaking_block_height" in resp.text


def test_node_not_ready():
    api.contract = None
    client = TestClient(api.app)
    assert client.get("/status").status_code == 503
