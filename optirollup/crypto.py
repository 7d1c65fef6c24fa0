"""
Core cryptographic functions for the rollup.

Hashing is Keccak-256 everywhere. Aggregate BLS verification lives outside
this package; the core only needs a ``verify_single`` / ``hash_to_point``
capability, and ``Ed25519Verifier`` provides one on top of PyNaCl for tooling
and tests.
"""
from typing import Protocol

import nacl.exceptions
import nacl.signing
from Crypto.Hash import keccak

HASH_LENGTH = 32


def generate_hash(data: bytes) -> bytes:
    """Generates a Keccak-256 hash."""
    return keccak.new(digest_bits=256, data=data).digest()


class SignatureVerifier(Protocol):
    """The signature capability consumed by the transition engine."""

    def hash_to_point(self, domain: bytes, message: bytes) -> bytes:
        ...

    def verify_single(self, signature: bytes, pubkey: bytes, message_point: bytes) -> bool:
        ...


class Ed25519Verifier:
    """
    Signature capability backed by ed25519.

    The "point" a signer signs is ``keccak(domain || message)``, so the domain
    tag separates signatures across deployments the same way a BLS domain does.
    """

    def hash_to_point(self, domain: bytes, message: bytes) -> bytes:
        return generate_hash(domain + message)

    def verify_single(self, signature: bytes, pubkey: bytes, message_point: bytes) -> bool:
        try:
            verify_key = nacl.signing.VerifyKey(pubkey)
            verify_key.verify(message_point, signature)
            return True
        except (nacl.exceptions.BadSignatureError, ValueError, TypeError):
            # Catch both cryptographic failures and format/length errors
            return False


def generate_key_pair() -> tuple[nacl.signing.SigningKey, bytes]:
    """Generates an ed25519 signing key and its raw 32-byte public key."""
    signing_key = nacl.signing.SigningKey.generate()
    return signing_key, bytes(signing_key.verify_key)


def sign(signing_key: nacl.signing.SigningKey, domain: bytes, message: bytes) -> bytes:
    """Signs ``message`` under ``domain``, returning the detached signature."""
    point = Ed25519Verifier().hash_to_point(domain, message)
    return signing_key.sign(point).signature
