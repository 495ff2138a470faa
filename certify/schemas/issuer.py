"""
Canonical Issuer Schema

An issuer is an identity admitted by an Admin to mint credentials.
Issuer records are created once and never deleted; only their status moves.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IssuerStatus(str, Enum):
    """
    Issuer status state machine.

        ACTIVE <-> SUSPENDED
           \\        /
           DEACTIVATED   (terminal)
    """
    ACTIVE = "Active"
    SUSPENDED = "Suspended"
    DEACTIVATED = "Deactivated"


# Allowed transitions. Self-transitions are never listed.
ISSUER_TRANSITIONS: dict[IssuerStatus, frozenset[IssuerStatus]] = {
    IssuerStatus.ACTIVE: frozenset({IssuerStatus.SUSPENDED, IssuerStatus.DEACTIVATED}),
    IssuerStatus.SUSPENDED: frozenset({IssuerStatus.ACTIVE, IssuerStatus.DEACTIVATED}),
    IssuerStatus.DEACTIVATED: frozenset(),
}


class IssuerRecord(BaseModel):
    """
    Immutable snapshot of an issuer.

    EXISTENCE RULE: a record exists iff registered_at is set.
    get_issuer() on an unknown identity returns IssuerRecord.empty(identity),
    which has registered_at=None and status=None.
    """
    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., description="Issuer identity (record key)")
    name: str = Field(default="", description="Display name")
    endpoint: str = Field(default="", description="Website or endpoint reference")
    status: Optional[IssuerStatus] = Field(
        default=None,
        description="Current status. None only for the empty record."
    )
    registered_at: Optional[datetime] = Field(
        default=None,
        description="Set once at admission, never changes"
    )

    @property
    def exists(self) -> bool:
        return self.registered_at is not None

    @property
    def is_active(self) -> bool:
        return self.exists and self.status == IssuerStatus.ACTIVE

    @classmethod
    def empty(cls, identity: str) -> "IssuerRecord":
        """The default record returned for identities never admitted."""
        return cls(identity=identity)
