from ecdsa import SigningKey, VerifyingKey, SECP256k1, BadSignatureError  # type: ignore
from ecdsa.util import sigencode_string, sigdecode_string  # type: ignore
import os
from .hash import sha256

def generate_private_key() -> bytes:
    """Random 32-byte secp256k1 secret."""
    return os.urandom(32)

def public_key_from_private(priv_bytes: bytes) -> bytes:
    """Compressed 33-byte public key."""
    return SigningKey.from_string(priv_bytes, curve=SECP256k1).get_verifying_key().to_string("compressed")

def address_from_pubkey(pub_bytes: bytes) -> str:
    """Account address: 0x + last 20 bytes of sha256(pubkey)."""
    return "0x" + sha256(pub_bytes)[-20:].hex()

def address_from_private(priv_bytes: bytes) -> str:
    return address_from_pubkey(public_key_from_private(priv_bytes))

def sign(message_hash: bytes, priv_bytes: bytes) -> bytes:
    """64-byte r||s signature over a 32-byte digest."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.sign_digest_deterministic(message_hash, sigencode=sigencode_string)

def verify(message_hash: bytes, signature: bytes, pub_bytes: bytes) -> bool:
    try:
        vk = VerifyingKey.from_string(pub_bytes, curve=SECP256k1)
        return vk.verify_digest(signature, message_hash, sigdecode=sigdecode_string)
    except (BadSignatureError, ValueError, AssertionError):
        return False
