import argparse
import os
import sys
import logging
import asyncio
import json
from uvicorn import Config, Server
from ...protocol.config.params import NETWORKS, CURRENT_NETWORK, DECIMALS
from ...protocol.types.common import AccrualPolicy, ProtocolError
from ...protocol.crypto.keys import generate_private_key, address_from_private
from ..core.clock import BlockClock
from ..core.contract import StakingContract
from ..tokens.erc721 import ERC721Collection
from ..tokens.erc20 import ERC20Token
from ..rpc import api # import module to set globals

logger = logging.getLogger(__name__)

def deployment_path(data_dir: str) -> str:
    return os.path.join(data_dir, "deployment.json")

def admin_key_path(data_dir: str) -> str:
    return os.path.join(data_dir, "admin_key.hex")

def ensure_admin_key(data_dir: str) -> str:
    """Returns the admin address, generating the admin key on first use."""
    key_path = admin_key_path(data_dir)
    if os.path.exists(key_path):
        with open(key_path, "r") as f:
            priv = bytes.fromhex(f.read().strip())
        print(f"Admin key already exists at {key_path}")
    else:
        priv = generate_private_key()
        with open(key_path, "w") as f:
            f.write(priv.hex())
        os.chmod(key_path, 0o600)
        print(f"Generated admin key at {key_path}")
    return address_from_private(priv)

def cmd_init(args):
    """Create the data dir and write the deployment (initializer arguments + devnet seed)."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    path = deployment_path(data_dir)
    if os.path.exists(path) and not args.force:
        print(f"Deployment already exists at {path} (use --force to overwrite)")
        sys.exit(1)

    net = NETWORKS[args.network] if args.network else CURRENT_NETWORK
    nft = ERC721Collection("StakeNFT", "SNFT")
    reward = ERC20Token("RewardToken", "RTKN")

    admin = args.admin or ensure_admin_key(data_dir)

    holders = {}
    if args.mint_to:
        holders[args.mint_to] = list(range(1, args.mint + 1))

    deployment = {
        "network": net.network_id,
        "contract_address": net.contract_address,
        "nft_address": nft.address,
        "reward_token_address": reward.address,
        "admin": admin,
        "reward_per_block": int(args.reward_per_block * 10**DECIMALS) if args.reward_per_block is not None else net.reward_per_block,
        "unbonding_period": args.unbonding_period if args.unbonding_period is not None else net.unbonding_period_blocks,
        "reward_claim_delay": args.claim_delay if args.claim_delay is not None else net.reward_claim_delay_blocks,
        "accrual_policy": (args.accrual_policy or net.accrual_policy.value),
        "block_time_sec": net.block_time_sec,
        "reward_funding": net.initial_reward_funding,
        "nft_holders": holders,
    }
    with open(path, "w") as f:
        json.dump(deployment, f, indent=2)

    print(f"Deployment written to {path}")
    print(f"Contract:     {deployment['contract_address']}")
    print(f"Collection:   {deployment['nft_address']}")
    print(f"Reward token: {deployment['reward_token_address']}")
    print(f"Admin:        {deployment['admin']}")

def load_deployment(data_dir: str) -> dict:
    path = deployment_path(data_dir)
    if not os.path.exists(path):
        raise FileNotFoundError(f"No deployment at {path}; run `init` first")
    with open(path, "r") as f:
        return json.load(f)

def build_contract(data_dir: str, deployment: dict) -> StakingContract:
    """Wires collaborators, clock and contract; initializes the contract on first start."""
    nft = ERC721Collection("StakeNFT", "SNFT", address=deployment["nft_address"])
    reward = ERC20Token("RewardToken", "RTKN", address=deployment["reward_token_address"])
    clock = BlockClock()

    contract = StakingContract(
        os.path.join(data_dir, "ledger.db"), nft, reward, clock,
        address=deployment["contract_address"],
    )
    # The token contracts are in-memory: re-seed them consistently with the persisted ledger.
    # Seeded holders have the contract as operator so they can stake through signed calls.
    for holder, token_ids in deployment.get("nft_holders", {}).items():
        for token_id in token_ids:
            custodian = contract.address if contract.state.token_owner(token_id) else holder
            nft.mint(custodian, token_id)
        nft.set_approval_for_all(holder, contract.address, True)
    funding = deployment.get("reward_funding", 0) - contract.state.meta.total_reward_paid
    if funding > 0:
        reward.mint(contract.address, funding)

    if not contract.is_initialized:
        contract.initialize(
            deployment["admin"],
            nft.address,
            reward.address,
            deployment["reward_per_block"],
            deployment["unbonding_period"],
            deployment["reward_claim_delay"],
            AccrualPolicy(deployment.get("accrual_policy", AccrualPolicy.PER_TOKEN.value)),
        )
    return contract

def tick(contract: StakingContract) -> int:
    """Mines one block and checkpoints the height."""
    contract.clock.mine()
    height = contract.checkpoint_height()
    logger.debug(f"Block {height}")
    return height

async def block_ticker(contract: StakingContract, block_time_sec: int):
    while True:
        await asyncio.sleep(block_time_sec)
        tick(contract)

async def run_node_async(args):
    deployment = load_deployment(args.datadir)
    contract = build_contract(args.datadir, deployment)
    api.contract = contract

    logger.info(f"Node running at block {contract.current_block} (block time {deployment['block_time_sec']}s)")
    ticker = asyncio.create_task(block_ticker(contract, deployment["block_time_sec"]))

    config = Config(app=api.app, host=args.host, port=args.port, log_level="info")
    server = Server(config)
    try:
        await server.serve()
    finally:
        ticker.cancel()
        contract.checkpoint_height()
        contract.close()

def cmd_run(args):
    """Wrapper to run async main."""
    try:
        asyncio.run(run_node_async(args))
    except KeyboardInterrupt:
        pass
    except (FileNotFoundError, ProtocolError) as e:
        print(f"Error: {e}")
        sys.exit(1)

def main():
    parser = argparse.ArgumentParser(description="NFT Staking Node CLI")
    parser.add_argument("--datadir", default="./.nftstaking", help="Data directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Init command
    init_parser = subparsers.add_parser("init", help="Write deployment configuration")
    init_parser.add_argument("--network", choices=sorted(NETWORKS), help="Network preset (default: NFTSTAKING_NETWORK or devnet)")
    init_parser.add_argument("--admin", help="Administrator address (default: generate admin_key.hex in the data dir)")
    init_parser.add_argument("--reward-per-block", type=float, help="Reward per block in whole tokens")
    init_parser.add_argument("--unbonding-period", type=int, help="Unbonding period in blocks")
    init_parser.add_argument("--claim-delay", type=int, help="Reward claim delay in blocks")
    init_parser.add_argument("--accrual-policy", choices=[p.value for p in AccrualPolicy], help="Reward accrual policy")
    init_parser.add_argument("--mint-to", help="Devnet: account receiving freshly minted NFTs")
    init_parser.add_argument("--mint", type=int, default=5, help="Devnet: number of NFTs to mint")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing deployment")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default=CURRENT_NETWORK.rpc_host, help="RPC Host")
    run_parser.add_argument("--port", type=int, default=CURRENT_NETWORK.rpc_port, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
