"""
Parameter administration.

A single privileged account (the one that initialized the contract) may
change the reward rate and the two delays. Changes apply from the next
computation on; already elapsed windows are not recomputed, and an
unbonding record keeps the unlock block it was created with.
"""
import logging
from ...protocol.types.common import NotAuthorized, ValidationError
from .state import LedgerState

logger = logging.getLogger(__name__)

SETTABLE_PARAMETERS = ("reward_per_block", "unbonding_period", "reward_claim_delay")


class ParameterAdmin:
    def require_admin(self, state: LedgerState, caller: str):
        if not state.meta.admin or caller != state.meta.admin:
            raise NotAuthorized(f"{caller} is not the contract administrator")

    def set_parameter(self, state: LedgerState, caller: str, name: str, value: int) -> int:
        """Sets one parameter and returns its previous value."""
        self.require_admin(state, caller)
        if name not in SETTABLE_PARAMETERS:
            raise ValidationError(f"Unknown parameter '{name}'")
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")

        old = getattr(state.parameters, name)
        state.parameters = state.parameters.model_copy(update={name: value})
        logger.info(f"Parameter {name} changed {old} -> {value} by {caller}")
        return old
