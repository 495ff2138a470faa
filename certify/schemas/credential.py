"""
Canonical Credential Schema

A credential is a soulbound record: minted once, owned forever by its
recipient, never edited, never transferred, never burned.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .issuer import IssuerRecord


class CredentialRecord(BaseModel):
    """
    Immutable credential record.

    credential_id is assigned by the ledger counter (0, 1, 2, ...).
    recipient is the owner; it is assigned exactly once, at mint time.
    """
    model_config = ConfigDict(frozen=True)

    credential_id: int = Field(..., ge=0)
    recipient_name: str
    recipient: str = Field(..., description="Owner identity (immutable)")
    issuer: str = Field(..., description="Identity of the minting issuer")
    issued_at: datetime
    title: str = Field(..., description="Course or subject title")


class CredentialDetails(BaseModel):
    """A credential joined with the current record of its issuer."""
    credential: CredentialRecord
    issuer: IssuerRecord
