"""
Request authentication for registry commands.

Callers are Ed25519 identities. A command is accepted only if:
- signature verifies over the canonical JSON of {action, ...command fields}
- its (caller, nonce) pair has not been seen before

The core trusts the identity it is handed; this module is what makes
that identity true.
"""

from collections import OrderedDict
from threading import Lock

from fastapi import HTTPException, Request, status
from pydantic import BaseModel, Field

from ..core import CertificateRegistry, Signer
from ..observability import caller_var, get_logger

logger = get_logger(__name__)


# ============================================================
# Signed Command Base
# ============================================================

class SignedCommand(BaseModel):
    """Fields common to every mutating request."""
    caller: str = Field(..., min_length=1, description="Base64 Ed25519 public key")
    nonce: str = Field(..., min_length=8, max_length=128)
    signature: str = Field(..., min_length=1, description="Base64 Ed25519 signature")

    def signed_message(self, action: str) -> dict:
        """The dict the caller signed: every field except signature, plus the action."""
        message = self.model_dump(mode="json", exclude={"signature"})
        message["action"] = action
        return message


# ============================================================
# Replay Protection
# ============================================================

class NonceStore:
    """
    Remembers recently used (caller, nonce) pairs.

    In-memory and per-process; the oldest entries are evicted
    once max_entries is reached.
    """

    def __init__(self, max_entries: int = 100_000):
        self._seen: OrderedDict[tuple[str, str], None] = OrderedDict()
        self._max_entries = max_entries
        self._lock = Lock()

    def check_and_record(self, caller: str, nonce: str) -> bool:
        """Record the pair. Returns False if it was already used."""
        key = (caller, nonce)
        with self._lock:
            if key in self._seen:
                return False
            self._seen[key] = None
            if len(self._seen) > self._max_entries:
                self._seen.popitem(last=False)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


# ============================================================
# Helper Functions
# ============================================================

def get_registry(request: Request) -> CertificateRegistry:
    """Get registry from app state."""
    return request.app.state.registry


def get_nonces(request: Request) -> NonceStore:
    """Get nonce store from app state."""
    return request.app.state.nonces


def authenticate(request: Request, command: SignedCommand, action: str) -> str:
    """
    Verify a signed command and return the caller identity.

    Raises:
        HTTPException 401: bad signature or replayed nonce
    """
    if not Signer.verify_command(command.signed_message(action), command.signature, command.caller):
        logger.warning("Rejected command: bad signature", action=action, caller=command.caller)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Signature verification failed",
        )

    if not get_nonces(request).check_and_record(command.caller, command.nonce):
        logger.warning("Rejected command: replayed nonce", action=action, caller=command.caller)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Nonce already used",
        )

    caller_var.set(command.caller)
    return command.caller
