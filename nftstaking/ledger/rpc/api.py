from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from typing import Optional
from ...protocol.types.call import Call
from ...protocol.types.common import ProtocolError, NotAuthorized, NoSuchStake
from ..core.contract import StakingContract
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="NFT Staking Node RPC")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
contract: Optional[StakingContract] = None

def _require_contract() -> StakingContract:
    if not contract:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return contract

@app.get("/status")
async def get_status():
    c = _require_contract()
    return {
        "block": c.current_block,
        "contract": c.address,
        "initialized": c.is_initialized,
        "admin": c.admin,
        "staked_tokens": c.state.count_staked(),
        "unbonding_tokens": c.state.count_unbonding(),
        "reward_balance": c.reward_balance(),
        "total_reward_paid": c.state.meta.total_reward_paid,
        "state_root": c.state.compute_state_root(),
    }

@app.get("/params")
async def get_params():
    c = _require_contract()
    if not c.parameters:
        raise HTTPException(status_code=404, detail="Contract not initialized")
    return c.parameters.model_dump(mode="json")

@app.get("/stakes/{account}")
async def get_stakes(account: str):
    """Active stakes of an account, in stake order."""
    c = _require_contract()
    stakes = c.stakes_of(account)
    return {
        "account": account,
        "count": len(stakes),
        "stakes": [s.model_dump() for s in stakes],
        "current_block": c.current_block,
    }

@app.get("/stakes/{account}/{index}")
async def get_stake_at(account: str, index: int):
    c = _require_contract()
    try:
        return c.stake_at(account, index).model_dump()
    except NoSuchStake as e:
        raise HTTPException(status_code=404, detail=str(e))

@app.get("/rewards/{account}")
async def get_pending_reward(account: str):
    c = _require_contract()
    return {
        "account": account,
        "pending_reward": c.pending_reward(account),
        "current_block": c.current_block,
    }

@app.get("/unbonding/{account}")
async def get_unbonding(account: str):
    """Pending unbonding records with blocks remaining until withdrawal."""
    c = _require_contract()
    height = c.current_block
    entries = [
        {
            **r.model_dump(),
            "blocks_remaining": max(0, r.unlock_block - height),
            "withdrawable": height >= r.unlock_block,
        }
        for r in c.unbonding_of(account)
    ]
    return {
        "account": account,
        "unbonding_count": len(entries),
        "unbonding": entries,
        "current_block": height,
    }

@app.get("/position/{account}")
async def get_position(account: str):
    c = _require_contract()
    return c.account_position(account).model_dump(mode="json")

@app.get("/token/{token_id}")
async def get_token(token_id: int):
    c = _require_contract()
    return {
        "token_id": token_id,
        "state": c.token_state(token_id).value,
        "staker": c.state.token_owner(token_id),
    }

@app.get("/events")
async def get_events(account: Optional[str] = None, event_type: Optional[str] = None):
    """Recent committed ledger events, oldest first."""
    c = _require_contract()
    return [
        {"event": e.name, "block": e.block, **e.data}
        for e in c.events.recent(event_type=event_type, account=account)
    ]

@app.post("/call/send")
async def send_call(call: Call):
    c = _require_contract()
    call_hash = call.hash()
    try:
        receipt = c.apply_call(call)
    except ProtocolError as e:
        status = 403 if isinstance(e, NotAuthorized) else 400
        raise HTTPException(status_code=status, detail={
            "call_hash": call_hash,
            "status": "failed",
            "error": str(e),
            "error_code": getattr(e, "code", None),
        })
    return receipt.to_dict()

@app.get("/call/{call_hash}/receipt")
async def get_call_receipt(call_hash: str):
    c = _require_contract()
    receipt = c.receipts.get(call_hash)
    if not receipt:
        raise HTTPException(status_code=404, detail="Call not found")
    return receipt.to_dict()

@app.get("/metrics")
async def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    from ..observability import metrics_registry, update_metrics

    update_metrics(contract)
    return Response(
        content=generate_latest(metrics_registry),
        media_type=CONTENT_TYPE_LATEST
    )
