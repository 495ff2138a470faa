"""
Caller Identity Signing

Identities are base64-encoded Ed25519 public keys.
A caller proves it owns an identity by signing the canonical form of the
command it submits. The registry core never sees keys; only the HTTP
boundary verifies signatures before handing the identity to the core.
"""

import base64
from typing import Any, Tuple

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey

from .hasher import Hasher


class Signer:
    """Ed25519 keypairs and command signatures."""

    @staticmethod
    def generate_keypair() -> Tuple[str, str]:
        """
        Generate a new identity.

        Returns:
            Tuple of (private_key_b64, identity) where identity is the
            base64 public key.
        """
        signing_key = SigningKey.generate()
        private_b64 = base64.b64encode(bytes(signing_key)).decode("utf-8")
        public_b64 = base64.b64encode(bytes(signing_key.verify_key)).decode("utf-8")
        return private_b64, public_b64

    @staticmethod
    def identity_of(private_key_b64: str) -> str:
        """Derive the identity (public key) of a private key."""
        signing_key = SigningKey(base64.b64decode(private_key_b64))
        return base64.b64encode(bytes(signing_key.verify_key)).decode("utf-8")

    @staticmethod
    def sign(message: str, private_key_b64: str) -> str:
        """Sign a message; returns the base64 raw signature."""
        signing_key = SigningKey(base64.b64decode(private_key_b64))
        signed = signing_key.sign(message.encode("utf-8"))
        return base64.b64encode(signed.signature).decode("utf-8")

    @staticmethod
    def verify(message: str, signature_b64: str, identity: str) -> bool:
        """
        Verify an Ed25519 signature against an identity.

        Malformed keys or signatures verify as False.
        """
        try:
            verify_key = VerifyKey(base64.b64decode(identity, validate=True))
            verify_key.verify(message.encode("utf-8"), base64.b64decode(signature_b64, validate=True))
            return True
        except (BadSignatureError, CryptoError, ValueError, TypeError):
            return False

    @staticmethod
    def sign_command(command: dict[str, Any], private_key_b64: str) -> str:
        """Sign the canonical form of a command body."""
        return Signer.sign(Hasher.canonicalize(command), private_key_b64)

    @staticmethod
    def verify_command(command: dict[str, Any], signature_b64: str, identity: str) -> bool:
        """Verify a command signature made with sign_command()."""
        return Signer.verify(Hasher.canonicalize(command), signature_b64, identity)
