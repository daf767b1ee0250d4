# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import random
import requests
import os
from .keystore import KeyStore
from ..protocol.types.call import Call
from ..protocol.types.common import CallType
from ..protocol.config.params import DECIMALS, REWARD_DENOM

DEFAULT_NODE = "http://localhost:8000"

def get_node_url(args):
    return args.node or os.environ.get("NFTSTAKING_NODE", DEFAULT_NODE)

def get_keystore(args) -> KeyStore:
    return KeyStore(args.keystore)

# --- Keys Commands ---
def cmd_keys_add(args):
    try:
        key = get_keystore(args).create_key(args.name)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' created.")
    print(f"Address: {key['address']}")
    print(f"Pubkey:  {key['public_key']}")

def cmd_keys_import(args):
    try:
        key = get_keystore(args).import_key(args.name, args.private_key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' imported.")
    print(f"Address: {key['address']}")

def cmd_keys_list(args):
    keys = get_keystore(args).list_keys()
    if not keys:
        print("No keys found.")
        return
    print(f"{'Name':<15} {'Address':<45}")
    print("-" * 60)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<45}")

def cmd_keys_show(args):
    key = get_keystore(args).get_key(args.name)
    if not key:
        print(f"Key '{args.name}' not found.")
        sys.exit(1)
    print(json.dumps({k: v for k, v in key.items() if k != "private_key"}, indent=2))

def fetch(url: str, path: str) -> dict:
    try:
        resp = requests.get(f"{url}{path}", timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()

def format_amount(amount: int) -> str:
    return f"{amount / 10**DECIMALS} {REWARD_DENOM}"

# --- Query Commands ---
def cmd_query_status(args):
    print(json.dumps(fetch(get_node_url(args), "/status"), indent=2))

def cmd_query_params(args):
    data = fetch(get_node_url(args), "/params")
    print(f"Reward per block:   {format_amount(int(data['reward_per_block']))}")
    print(f"Unbonding period:   {data['unbonding_period']} blocks")
    print(f"Reward claim delay: {data['reward_claim_delay']} blocks")
    print(f"Accrual policy:     {data['accrual_policy']}")

def cmd_query_stakes(args):
    data = fetch(get_node_url(args), f"/stakes/{args.address}")
    print(f"Block: {data['current_block']}  Active stakes: {data['count']}")
    print(f"{'#':<4} {'Token':<10} {'Staked at':<12} {'Last claim'}")
    print("-" * 40)
    for i, s in enumerate(data['stakes']):
        print(f"{i:<4} {s['token_id']:<10} {s['stake_block']:<12} {s['last_claim_block']}")

def cmd_query_rewards(args):
    data = fetch(get_node_url(args), f"/rewards/{args.address}")
    print(f"Pending reward at block {data['current_block']}: {format_amount(int(data['pending_reward']))}")

def cmd_query_unbonding(args):
    data = fetch(get_node_url(args), f"/unbonding/{args.address}")
    print(f"Block: {data['current_block']}  Unbonding: {data['unbonding_count']}")
    print(f"{'Token':<10} {'Unlock block':<14} {'Remaining'}")
    print("-" * 40)
    for u in data['unbonding']:
        print(f"{u['token_id']:<10} {u['unlock_block']:<14} {u['blocks_remaining']}")

def cmd_query_token(args):
    print(json.dumps(fetch(get_node_url(args), f"/token/{args.token_id}"), indent=2))

def cmd_query_receipt(args):
    print(json.dumps(fetch(get_node_url(args), f"/call/{args.call_hash}/receipt"), indent=2))

# --- Call Commands ---
def broadcast_call(url, call: Call):
    try:
        resp = requests.post(f"{url}/call/send", json=call.model_dump(mode="json"), timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code == 200:
        res = resp.json()
        print(f"Success! CallHash: {res['call_hash']} (block {res['block_height']})")
        if res.get("result"):
            print(json.dumps(res["result"], indent=2))
    else:
        print(f"Rejected: {resp.text}")
        sys.exit(1)

def build_call(call_type: CallType, key: dict, token_ids=(), value=None) -> Call:
    """Builds a call from a keystore entry and signs it with that key."""
    call = Call(
        call_type=call_type,
        sender=key["address"],
        token_ids=list(token_ids),
        value=value,
        nonce=random.getrandbits(32),
        pub_key=key["public_key"],
    )
    return call.sign(bytes.fromhex(key["private_key"]))

def signer(args) -> dict:
    key = get_keystore(args).get_key(args.sender)
    if not key:
        print(f"Key '{args.sender}' not found.")
        sys.exit(1)
    return key

def cmd_call_stake(args):
    broadcast_call(get_node_url(args), build_call(CallType.STAKE, signer(args), args.token_ids))

def cmd_call_unstake(args):
    broadcast_call(get_node_url(args), build_call(CallType.UNSTAKE, signer(args), args.token_ids))

def cmd_call_withdraw(args):
    broadcast_call(get_node_url(args), build_call(CallType.WITHDRAW, signer(args), [args.token_id]))

def cmd_call_claim(args):
    broadcast_call(get_node_url(args), build_call(CallType.CLAIM_REWARDS, signer(args)))

def cmd_call_set_reward(args):
    value = int(args.amount * 10**DECIMALS)
    broadcast_call(get_node_url(args), build_call(CallType.SET_REWARD_PER_BLOCK, signer(args), value=value))

def cmd_call_set_unbonding(args):
    broadcast_call(get_node_url(args), build_call(CallType.SET_UNBONDING_PERIOD, signer(args), value=args.blocks))

def cmd_call_set_claim_delay(args):
    broadcast_call(get_node_url(args), build_call(CallType.SET_REWARD_CLAIM_DELAY, signer(args), value=args.blocks))

def main():
    parser = argparse.ArgumentParser(prog="nftstaking-cli", description="NFT Staking Client CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")
    parser.add_argument("--keystore", help="Key directory (default: NFTSTAKING_KEYS or ~/.nftstaking/keys)")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage account keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create a new key")
    pk_add.add_argument("name", help="Key name")

    pk_import = sp_keys.add_parser("import", help="Import a private key")
    pk_import.add_argument("name", help="Key name")
    pk_import.add_argument("--private-key", required=True, help="Hex private key")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show a key")
    pk_show.add_argument("name", help="Key name")

    # query
    p_query = subparsers.add_parser("query", help="Query staking state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("status", help="Node and contract status")
    sp_query.add_parser("params", help="Current parameters")

    pq_stakes = sp_query.add_parser("stakes", help="Active stakes of an account")
    pq_stakes.add_argument("address", help="Account address")

    pq_rewards = sp_query.add_parser("rewards", help="Pending reward of an account")
    pq_rewards.add_argument("address", help="Account address")

    pq_unb = sp_query.add_parser("unbonding", help="Unbonding tokens of an account")
    pq_unb.add_argument("address", help="Account address")

    pq_token = sp_query.add_parser("token", help="Staking state of a token")
    pq_token.add_argument("token_id", type=int, help="Token id")

    pq_receipt = sp_query.add_parser("receipt", help="Receipt of a submitted call")
    pq_receipt.add_argument("call_hash", help="Call hash")

    # call
    p_call = subparsers.add_parser("call", help="Submit calls to the staking contract")
    sp_call = p_call.add_subparsers(dest="subcommand")

    pc_stake = sp_call.add_parser("stake", help="Stake tokens")
    pc_stake.add_argument("token_ids", type=int, nargs="+", help="Token ids")
    pc_stake.add_argument("--from", dest="sender", required=True, help="Key name")

    pc_unstake = sp_call.add_parser("unstake", help="Start unbonding staked tokens")
    pc_unstake.add_argument("token_ids", type=int, nargs="+", help="Token ids")
    pc_unstake.add_argument("--from", dest="sender", required=True, help="Key name")

    pc_withdraw = sp_call.add_parser("withdraw", help="Withdraw an unbonded token")
    pc_withdraw.add_argument("token_id", type=int, help="Token id")
    pc_withdraw.add_argument("--from", dest="sender", required=True, help="Key name")

    pc_claim = sp_call.add_parser("claim", help="Claim pending rewards")
    pc_claim.add_argument("--from", dest="sender", required=True, help="Key name")

    pc_rate = sp_call.add_parser("set-reward", help="Admin: set reward per block")
    pc_rate.add_argument("amount", type=float, help="Reward per block in whole tokens")
    pc_rate.add_argument("--from", dest="sender", required=True, help="Key name")

    pc_unb = sp_call.add_parser("set-unbonding", help="Admin: set unbonding period")
    pc_unb.add_argument("blocks", type=int, help="Blocks")
    pc_unb.add_argument("--from", dest="sender", required=True, help="Key name")

    pc_delay = sp_call.add_parser("set-claim-delay", help="Admin: set reward claim delay")
    pc_delay.add_argument("blocks", type=int, help="Blocks")
    pc_delay.add_argument("--from", dest="sender", required=True, help="Key name")

    args = parser.parse_args()

    if args.command == "keys":
        if args.subcommand == "add": cmd_keys_add(args)
        elif args.subcommand == "import": cmd_keys_import(args)
        elif args.subcommand == "list": cmd_keys_list(args)
        elif args.subcommand == "show": cmd_keys_show(args)
        else: p_keys.print_help()

    elif args.command == "query":
        if args.subcommand == "status": cmd_query_status(args)
        elif args.subcommand == "params": cmd_query_params(args)
        elif args.subcommand == "stakes": cmd_query_stakes(args)
        elif args.subcommand == "rewards": cmd_query_rewards(args)
        elif args.subcommand == "unbonding": cmd_query_unbonding(args)
        elif args.subcommand == "token": cmd_query_token(args)
        elif args.subcommand == "receipt": cmd_query_receipt(args)
        else: p_query.print_help()

    elif args.command == "call":
        if args.subcommand == "stake": cmd_call_stake(args)
        elif args.subcommand == "unstake": cmd_call_unstake(args)
        elif args.subcommand == "withdraw": cmd_call_withdraw(args)
        elif args.subcommand == "claim": cmd_call_claim(args)
        elif args.subcommand == "set-reward": cmd_call_set_reward(args)
        elif args.subcommand == "set-unbonding": cmd_call_set_unbonding(args)
        elif args.subcommand == "set-claim-delay": cmd_call_set_claim_delay(args)
        else: p_call.print_help()

    else:
        parser.print_help()

if __name__ == "__main__":
    main()
