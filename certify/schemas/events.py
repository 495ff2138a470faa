"""
Canonical Audit Event Schema

Every mutating registry operation leaves a trail of audit events.
Nothing is "edited". Things happen.

Each event:
- Is appended, never updated or deleted
- Is hashed and chained to the event before it
- Is committed together with the other events of its operation, or not at all
- Is never read back into registry state
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .issuer import IssuerStatus
from .roles import Role


class EventType(str, Enum):
    """
    All audit event types.
    You can add more later, never remove.
    """
    # Capability events
    ROLE_GRANTED = "RoleGranted"
    ROLE_REVOKED = "RoleRevoked"
    ROLE_ADMIN_CHANGED = "RoleAdminChanged"

    # Issuer lifecycle events
    ISSUER_ADDED = "IssuerAdded"
    ISSUER_STATUS_UPDATED = "IssuerStatusUpdated"
    ISSUER_ROLE_REVOKED = "IssuerRoleRevoked"

    # Credential events
    CREDENTIAL_ISSUED = "CredentialIssued"


# ============================================================
# Event Payloads
# ============================================================

class RoleGrantedPayload(BaseModel):
    role: Role
    identity: str
    sender: str = Field(..., description="Identity that performed the grant")


class RoleRevokedPayload(BaseModel):
    role: Role
    identity: str
    sender: str = Field(..., description="Identity that performed the revoke")


class RoleAdminChangedPayload(BaseModel):
    """Emitted at bootstrap when a role is placed under its admin role."""
    role: Role
    previous_admin_role: Role
    new_admin_role: Role


class IssuerAddedPayload(BaseModel):
    identity: str
    name: str
    endpoint: str


class IssuerStatusUpdatedPayload(BaseModel):
    identity: str
    old_status: IssuerStatus
    new_status: IssuerStatus


class IssuerRoleRevokedPayload(BaseModel):
    """Emitted when deactivation strips the Issuer role."""
    identity: str


class CredentialIssuedPayload(BaseModel):
    credential_id: int = Field(..., ge=0)
    issuer: str
    recipient: str


# ============================================================
# The Audit Event Object
# ============================================================

class AuditEvent(BaseModel):
    """
    The immutable audit record.

    Chain Integrity Rules:
    - sequence_number is monotonically increasing (0, 1, 2, ...)
    - previous_event_hash is None for sequence 0 only
    - event_hash = SHA-256 over the hash body chained to previous_event_hash
    """
    event_id: UUID
    sequence_number: int = Field(..., ge=0)
    event_type: EventType
    actor: str = Field(..., description="Caller identity whose operation produced this event")
    payload: dict[str, Any]
    previous_event_hash: Optional[str] = None
    event_hash: str
    created_at: datetime

    @property
    def is_genesis(self) -> bool:
        return self.sequence_number == 0

    def hash_body(self) -> dict[str, Any]:
        """Fields covered by event_hash."""
        return self.build_hash_body(
            sequence_number=self.sequence_number,
            event_type=self.event_type,
            actor=self.actor,
            payload=self.payload,
            created_at=self.created_at,
        )

    @staticmethod
    def build_hash_body(
        sequence_number: int,
        event_type: EventType,
        actor: str,
        payload: dict[str, Any],
        created_at: datetime,
    ) -> dict[str, Any]:
        return {
            "sequence_number": sequence_number,
            "event_type": event_type,
            "actor": actor,
            "payload": payload,
            "created_at": created_at,
        }

    def validate_chain_rules(self) -> None:
        """
        Validate chain linkage rules.

        Raises ValueError if rules are violated.
        """
        if self.sequence_number == 0:
            if self.previous_event_hash is not None:
                raise ValueError(
                    f"Genesis event (sequence 0) must have previous_event_hash=None, "
                    f"got: {self.previous_event_hash}"
                )
        else:
            if self.previous_event_hash is None:
                raise ValueError(
                    f"Event at sequence {self.sequence_number} must have "
                    f"previous_event_hash set, got None"
                )
            if len(self.previous_event_hash) != 64:
                raise ValueError(
                    f"previous_event_hash must be 64 hex characters, "
                    f"got {len(self.previous_event_hash)}"
                )
