import hashlib
from typing import List

EMPTY_ROOT = bytes(32)

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()

def digest_fields(*fields) -> bytes:
    """Hashes the fields joined with '|'; used for call ids and state-root leaves."""
    return sha256("|".join(str(f) for f in fields).encode("utf-8"))

def merkle_root(leaves: List[bytes]) -> bytes:
    """Pairs nodes level by level; an odd level repeats its last node."""
    level = list(leaves)
    if not level:
        return EMPTY_ROOT
    while len(level) > 1:
        if len(level) % 2:
            level.append(level[-1])
        level = [sha256(level[i] + level[i + 1]) for i in range(0, len(level), 2)]
    return level[0]
