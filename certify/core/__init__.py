# Core registry services
# hasher is imported first: certify.db.store depends on it.
from .hasher import Hasher, CanonicalSerializationError
from .signer import Signer
from .clock import MonotonicClock
from .errors import (
    RegistryError,
    Unauthorized,
    InvalidIdentity,
    IssuerAlreadyExists,
    IssuerNotFound,
    IssuerDeactivated,
    StatusUnchanged,
    IssuerNotActive,
    CredentialNotFound,
    TransferForbidden,
)
from .transaction import Transaction
from .capabilities import CapabilityRegistry, ROLE_ADMINS
from .issuers import IssuerLifecycleManager
from .ownership import OwnershipGuard, NO_OWNER
from .credentials import CredentialLedger
from .registry import CertificateRegistry

__all__ = [
    "Hasher",
    "CanonicalSerializationError",
    "Signer",
    "MonotonicClock",
    "RegistryError",
    "Unauthorized",
    "InvalidIdentity",
    "IssuerAlreadyExists",
    "IssuerNotFound",
    "IssuerDeactivated",
    "StatusUnchanged",
    "IssuerNotActive",
    "CredentialNotFound",
    "TransferForbidden",
    "Transaction",
    "CapabilityRegistry",
    "ROLE_ADMINS",
    "IssuerLifecycleManager",
    "OwnershipGuard",
    "NO_OWNER",
    "CredentialLedger",
    "CertificateRegistry",
]
