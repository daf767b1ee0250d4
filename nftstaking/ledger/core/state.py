from typing import Dict, Optional, List, Set
import json
import logging
from ...protocol.types.stake import StakeRecord, UnbondingRecord, Parameters
from ...protocol.types.common import TokenState
from ...protocol.crypto.hash import digest_fields, merkle_root
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

class ContractMeta:
    """Deployment facts fixed by the initializer, plus running totals."""

    def __init__(self, admin: str = "", nft_address: str = "", reward_token_address: str = "",
                 initialized: bool = False, last_block: int = 0, total_reward_paid: int = 0):
        self.admin = admin
        self.nft_address = nft_address
        self.reward_token_address = reward_token_address
        self.initialized = initialized
        self.last_block = last_block
        self.total_reward_paid = total_reward_paid

    def copy(self) -> 'ContractMeta':
        return ContractMeta(**self.to_dict())

    def to_dict(self) -> dict:
        return {
            "admin": self.admin,
            "nft_address": self.nft_address,
            "reward_token_address": self.reward_token_address,
            "initialized": self.initialized,
            "last_block": self.last_block,
            "total_reward_paid": self.total_reward_paid,
        }

class LedgerState:
    """
    The staking ledger store: per-account ordered stake records, per-account
    unbonding records, parameters and deployment metadata.

    Components receive it by reference; a call mutates a clone and the clone
    replaces the live state only once every precondition has passed.
    """

    def __init__(self, db: StorageDB,
                 stakes: Dict[str, List[StakeRecord]] = None,
                 unbonding: Dict[str, List[UnbondingRecord]] = None,
                 parameters: Optional[Parameters] = None,
                 meta: Optional[ContractMeta] = None):
        self.db = db
        # account -> stake records in insertion order
        self._stakes: Dict[str, List[StakeRecord]] = stakes if stakes is not None else {}
        # account -> unbonding records
        self._unbonding: Dict[str, List[UnbondingRecord]] = unbonding if unbonding is not None else {}
        self.parameters = parameters
        self.meta = meta if meta is not None else ContractMeta()

        # token_id -> owner, for every token the contract holds (staked or unbonding)
        self._token_owner: Dict[int, str] = {}
        self._token_state: Dict[int, TokenState] = {}
        self._rebuild_token_index()

        # Accounts touched since the last persist
        self._dirty: Set[str] = set()

    def _rebuild_token_index(self):
        self._token_owner.clear()
        self._token_state.clear()
        for account, records in self._stakes.items():
            for rec in records:
                self._token_owner[rec.token_id] = account
                self._token_state[rec.token_id] = TokenState.STAKED
        for account, records in self._unbonding.items():
            for rec in records:
                self._token_owner[rec.token_id] = account
                self._token_state[rec.token_id] = TokenState.UNBONDING

    def clone(self) -> 'LedgerState':
        """Creates a copy of the state (for simulation)."""
        new_stakes = {k: [r.model_copy() for r in v] for k, v in self._stakes.items()}
        new_unbonding = {k: [r.model_copy() for r in v] for k, v in self._unbonding.items()}
        params = self.parameters.model_copy() if self.parameters else None
        cloned = LedgerState(self.db, new_stakes, new_unbonding, params, self.meta.copy())
        cloned._dirty = set(self._dirty)
        return cloned

    # --- Stake records ---
    def get_stakes(self, account: str) -> List[StakeRecord]:
        return self._stakes.get(account, [])

    def set_stakes(self, account: str, records: List[StakeRecord]):
        for rec in self._stakes.get(account, []):
            self._forget_token(rec.token_id)
        self._stakes[account] = records
        for rec in records:
            self._token_owner[rec.token_id] = account
            self._token_state[rec.token_id] = TokenState.STAKED
        self._dirty.add(account)

    # --- Unbonding records ---
    def get_unbonding(self, account: str) -> List[UnbondingRecord]:
        return self._unbonding.get(account, [])

    def set_unbonding(self, account: str, records: List[UnbondingRecord]):
        for rec in self._unbonding.get(account, []):
            self._forget_token(rec.token_id)
        self._unbonding[account] = records
        for rec in records:
            self._token_owner[rec.token_id] = account
            self._token_state[rec.token_id] = TokenState.UNBONDING
        self._dirty.add(account)

    def _forget_token(self, token_id: int):
        self._token_owner.pop(token_id, None)
        self._token_state.pop(token_id, None)

    # --- Token index ---
    def token_state(self, token_id: int) -> TokenState:
        return self._token_state.get(token_id, TokenState.UNSTAKED)

    def token_owner(self, token_id: int) -> Optional[str]:
        """Account that staked the token, while the contract holds it."""
        return self._token_owner.get(token_id)

    def accounts(self) -> List[str]:
        """Accounts with at least one stake or unbonding record."""
        active = {a for a, r in self._stakes.items() if r} | {a for a, r in self._unbonding.items() if r}
        return sorted(active)

    def count_staked(self) -> int:
        return sum(len(r) for r in self._stakes.values())

    def count_unbonding(self) -> int:
        return sum(len(r) for r in self._unbonding.values())

    # --- Persistence ---
    def persist(self):
        """Writes modified accounts, parameters and metadata to DB."""
        items: Dict[str, str] = {}
        deleted: List[str] = []
        for account in self._dirty:
            stakes = self._stakes.get(account, [])
            unbonding = self._unbonding.get(account, [])
            if stakes:
                items[f"stakes:{account}"] = json.dumps([r.model_dump() for r in stakes])
            else:
                deleted.append(f"stakes:{account}")
            if unbonding:
                items[f"unbonding:{account}"] = json.dumps([r.model_dump() for r in unbonding])
            else:
                deleted.append(f"unbonding:{account}")

        if self.parameters:
            items["params"] = self.parameters.model_dump_json()
        items["meta"] = json.dumps(self.meta.to_dict())

        self.db.set_state_many(items, deleted)
        logger.debug(f"Persisted ledger state ({len(self._dirty)} accounts)")
        self._dirty.clear()

    def load(self):
        """Replaces in-memory state with what is stored in DB."""
        self._stakes = {
            k.split(":", 1)[1]: [StakeRecord(**r) for r in json.loads(v)]
            for k, v in self.db.get_state_by_prefix("stakes:").items()
        }
        self._unbonding = {
            k.split(":", 1)[1]: [UnbondingRecord(**r) for r in json.loads(v)]
            for k, v in self.db.get_state_by_prefix("unbonding:").items()
        }
        raw_params = self.db.get_state("params")
        self.parameters = Parameters.model_validate_json(raw_params) if raw_params else None
        raw_meta = self.db.get_state("meta")
        self.meta = ContractMeta(**json.loads(raw_meta)) if raw_meta else ContractMeta()
        self._rebuild_token_index()
        self._dirty.clear()
        logger.info(
            f"Loaded ledger state: {self.count_staked()} staked, "
            f"{self.count_unbonding()} unbonding, initialized={self.meta.initialized}"
        )

    def compute_state_root(self) -> str:
        """Computes Merkle root over every record, the parameters and the metadata."""
        items = []
        for account in sorted(set(self._stakes) | set(self._unbonding)):
            for rec in self._stakes.get(account, []):
                items.append(digest_fields("S", account, rec.token_id, rec.stake_block, rec.last_claim_block))
            for rec in self._unbonding.get(account, []):
                items.append(digest_fields("U", account, rec.token_id, rec.unstake_block, rec.unlock_block))

        if self.parameters:
            items.append(digest_fields("P", self.parameters.model_dump_json()))
        items.append(digest_fields("M", json.dumps(self.meta.to_dict(), sort_keys=True)))

        return merkle_root(items).hex()
