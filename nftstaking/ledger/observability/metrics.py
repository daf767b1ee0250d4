# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Metrics:
- Calls executed, by type and outcome
- Staked / unbonding token counts, staking accounts
- Reward paid, reward rate, delays
- Current block
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# CALL METRICS
# ═══════════════════════════════════════════════════════════════════

calls_total = Counter(
    'nftstaking_calls_total',
    'Total number of calls executed',
    ['call_type', 'status'],
    registry=metrics_registry
)

call_errors_total = Counter(
    'nftstaking_call_errors_total',
    'Rejected calls by error kind',
    ['error_code'],
    registry=metrics_registry
)

rollbacks_total = Counter(
    'nftstaking_rollbacks_total',
    'Calls rolled back after a failed token transfer',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# LEDGER METRICS
# ═══════════════════════════════════════════════════════════════════

block_height = Gauge(
    'nftstaking_block_height',
    'Current block height',
    registry=metrics_registry
)

staked_tokens = Gauge(
    'nftstaking_staked_tokens',
    'Tokens currently staked',
    registry=metrics_registry
)

unbonding_tokens = Gauge(
    'nftstaking_unbonding_tokens',
    'Tokens currently unbonding',
    registry=metrics_registry
)

staking_accounts = Gauge(
    'nftstaking_accounts',
    'Accounts with at least one staked or unbonding token',
    registry=metrics_registry
)

reward_paid_total = Gauge(
    'nftstaking_reward_paid_total',
    'Total reward paid out (minimal units)',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# PARAMETERS
# ═══════════════════════════════════════════════════════════════════

reward_per_block = Gauge(
    'nftstaking_reward_per_block',
    'Current reward per block (minimal units)',
    registry=metrics_registry
)

unbonding_period_blocks = Gauge(
    'nftstaking_unbonding_period_blocks',
    'Current unbonding period in blocks',
    registry=metrics_registry
)

reward_claim_delay_blocks = Gauge(
    'nftstaking_reward_claim_delay_blocks',
    'Current reward claim delay in blocks',
    registry=metrics_registry
)


def record_call(call_type: str, status: str, error_code: str = None):
    """
    Count one executed call.

    Args:
        call_type: CallType name
        status: 'confirmed' or 'failed'
        error_code: Error kind for failed calls
    """
    calls_total.labels(call_type=call_type, status=status).inc()
    if error_code:
        call_errors_total.labels(error_code=error_code).inc()
        if error_code == "TransferFailed":
            rollbacks_total.inc()


def update_metrics(contract):
    """
    Update gauges from the current contract state.

    Args:
        contract: StakingContract instance
    """
    if not contract:
        return

    state = contract.state
    block_height.set(contract.current_block)
    staked_tokens.set(state.count_staked())
    unbonding_tokens.set(state.count_unbonding())
    staking_accounts.set(len(state.accounts()))
    reward_paid_total.set(state.meta.total_reward_paid)

    if state.parameters:
        reward_per_block.set(state.parameters.reward_per_block)
        unbonding_period_blocks.set(state.parameters.unbonding_period)
        reward_claim_delay_blocks.set(state.parameters.reward_claim_delay)
