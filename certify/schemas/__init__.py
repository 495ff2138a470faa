# Canonical Schemas for the Certificate Registry
# Records, roles and audit events shared by the core, storage and API.

from .roles import Role
from .issuer import IssuerRecord, IssuerStatus, ISSUER_TRANSITIONS
from .credential import CredentialRecord, CredentialDetails
from .events import (
    AuditEvent,
    EventType,
    RoleGrantedPayload,
    RoleRevokedPayload,
    RoleAdminChangedPayload,
    IssuerAddedPayload,
    IssuerStatusUpdatedPayload,
    IssuerRoleRevokedPayload,
    CredentialIssuedPayload,
)

__all__ = [
    # Roles
    "Role",
    # Issuers
    "IssuerRecord",
    "IssuerStatus",
    "ISSUER_TRANSITIONS",
    # Credentials
    "CredentialRecord",
    "CredentialDetails",
    # Events
    "AuditEvent",
    "EventType",
    "RoleGrantedPayload",
    "RoleRevokedPayload",
    "RoleAdminChangedPayload",
    "IssuerAddedPayload",
    "IssuerStatusUpdatedPayload",
    "IssuerRoleRevokedPayload",
    "CredentialIssuedPayload",
]
