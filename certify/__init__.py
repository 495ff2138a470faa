"""
Certify - soulbound credential registry.

Role-gated issuers mint non-transferable credentials; every change
is recorded in a hash-chained audit log.
"""

# core must load before db: the audit log store imports the core hasher.
from .core import CertificateRegistry

__version__ = "0.1.0"

__all__ = ["CertificateRegistry", "__version__"]
