from pydantic import BaseModel, Field
from typing import Optional, List
from ..crypto.hash import digest_fields
from ..crypto.keys import sign as crypto_sign, verify as crypto_verify, address_from_pubkey
from .common import CallType

class Call(BaseModel):
    """A single request against the staking contract, executed atomically."""
    call_type: CallType
    sender: str
    token_ids: List[int] = Field(default_factory=list)  # STAKE / UNSTAKE / WITHDRAW (exactly one)
    value: Optional[int] = None                         # New parameter value for admin setters
    nonce: int = 0                                      # Client-chosen, makes identical calls distinct
    pub_key: str = ""                                   # hex compressed secp256k1 key of the sender
    signature: str = ""                                 # hex r||s over hash()

    def hash(self) -> str:
        # The signature is not part of the hash it signs
        return digest_fields(
            self.call_type.value,
            self.sender,
            ",".join(str(t) for t in self.token_ids),
            "" if self.value is None else self.value,
            self.nonce,
            self.pub_key,
        ).hex()

    def sign(self, priv_key_bytes: bytes) -> "Call":
        self.signature = crypto_sign(bytes.fromhex(self.hash()), priv_key_bytes).hex()
        return self

    def verify_sender(self) -> Optional[str]:
        """Returns why the call is not authenticated as `sender`, or None if it is."""
        if not self.signature or not self.pub_key:
            return "Missing signature or pub_key"
        try:
            pub_bytes = bytes.fromhex(self.pub_key)
            sig_bytes = bytes.fromhex(self.signature)
        except ValueError:
            return "pub_key and signature must be hex"

        derived = address_from_pubkey(pub_bytes)
        if derived != self.sender:
            return f"pub_key mismatch: derived {derived}, expected {self.sender}"
        if not crypto_verify(bytes.fromhex(self.hash()), sig_bytes, pub_bytes):
            return "Invalid signature"
        return None
