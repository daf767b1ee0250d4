# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict
from ..types.common import AccrualPolicy

# Global Constants
REWARD_DENOM = "rtkn"
DECIMALS = 18

class DeploymentConfig:
    def __init__(self,
                 network_id: str,
                 contract_address: str,
                 block_time_sec: int,
                 reward_per_block: int,
                 unbonding_period_blocks: int,
                 reward_claim_delay_blocks: int,
                 accrual_policy: AccrualPolicy = AccrualPolicy.PER_TOKEN,
                 # Devnet bootstrap: reward tokens the contract is funded with on `init`
                 initial_reward_funding: int = 0,
                 rpc_host: str = "127.0.0.1",
                 rpc_port: int = 8000):
        self.network_id = network_id
        self.contract_address = contract_address
        self.block_time_sec = block_time_sec
        self.reward_per_block = reward_per_block
        self.unbonding_period_blocks = unbonding_period_blocks
        self.reward_claim_delay_blocks = reward_claim_delay_blocks
        self.accrual_policy = accrual_policy
        self.initial_reward_funding = initial_reward_funding
        self.rpc_host = rpc_host
        self.rpc_port = rpc_port

NETWORKS: Dict[str, DeploymentConfig] = {
    "devnet": DeploymentConfig(
        network_id="devnet",
        contract_address="0x" + "5a" * 20,
        block_time_sec=2,
        reward_per_block=1 * 10**DECIMALS,
        unbonding_period_blocks=10,
        reward_claim_delay_blocks=5,
        initial_reward_funding=1_000 * 10**DECIMALS,
    ),
    "testnet": DeploymentConfig(
        network_id="testnet",
        contract_address="0x" + "7e" * 20,
        block_time_sec=12,
        reward_per_block=10 * 10**DECIMALS,
        unbonding_period_blocks=100,
        reward_claim_delay_blocks=50,
        initial_reward_funding=100_000 * 10**DECIMALS,
    ),
    "mainnet": DeploymentConfig(
        network_id="mainnet",
        contract_address="0x" + "a1" * 20,
        block_time_sec=12,
        reward_per_block=10 * 10**DECIMALS,
        unbonding_period_blocks=50_400,   # ~7 days @ 12s
        reward_claim_delay_blocks=7_200,  # ~1 day @ 12s
        rpc_host="0.0.0.0",
    ),
}

def get_network(name: str = None) -> DeploymentConfig:
    name = name or os.environ.get("NFTSTAKING_NETWORK", "devnet")
    if name not in NETWORKS:
        raise ValueError(f"Unknown network '{name}' (expected one of {sorted(NETWORKS)})")
    return NETWORKS[name]

CURRENT_NETWORK = get_network()
