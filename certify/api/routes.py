"""
API Routes for the Certificate Registry

Command endpoints (signed, append-only):
- POST /roles/grant                 - Grant a role
- POST /roles/revoke                - Revoke a role
- POST /roles/renounce              - Drop a role held by the caller
- POST /issuers                     - Admit a new issuer
- POST /issuers/status              - Move an issuer through its state machine
- POST /credentials                 - Mint a credential (issuer only)
- POST /credentials/transfer        - Always refused: credentials are soulbound

Query endpoints (public reads):
- GET /roles/check                  - Does identity hold role
- GET /roles/{role}/admin           - Granting role of a role
- GET /roles/{role}/members         - Holders of a role
- GET /issuers                      - List issuers (optional status filter)
- GET /issuers/counts               - Issuer totals by status
- GET /issuers/lookup               - Issuer record (empty if never added)
- GET /credentials/total            - Number of minted credentials
- GET /credentials/{id}             - Credential record
- GET /credentials/{id}/details     - Credential joined with its issuer
- GET /credentials/{id}/owner       - Owner of a credential
- GET /holders/credentials          - Credentials held by an identity
- GET /audit/events                 - Committed audit events
- GET /audit/verify                 - Verify the audit hash chain

Identities are base64 and may contain '/', so they travel in query
strings and bodies, never in paths.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from ..core import CertificateRegistry
from ..schemas import (
    AuditEvent,
    CredentialDetails,
    CredentialRecord,
    IssuerRecord,
    IssuerStatus,
    Role,
)
from .deps import SignedCommand, authenticate, get_registry


router = APIRouter()


# ============================================================
# Request/Response Models
# ============================================================

class RoleCommand(SignedCommand):
    """Grant, revoke or renounce a role."""
    role: Role
    identity: str


class AddIssuerCommand(SignedCommand):
    identity: str
    name: str = Field(..., max_length=200)
    endpoint: str = Field("", max_length=500)


class UpdateIssuerStatusCommand(SignedCommand):
    identity: str
    status: IssuerStatus


class IssueCredentialCommand(SignedCommand):
    recipient: str
    recipient_name: str = Field(..., max_length=200)
    title: str = Field(..., max_length=200)


class TransferCommand(SignedCommand):
    credential_id: int = Field(..., ge=0)
    to: str


class RoleChangeResponse(BaseModel):
    role: Role
    identity: str
    changed: bool


class RoleCheckResponse(BaseModel):
    identity: str
    role: Role
    has_role: bool


class RoleAdminResponse(BaseModel):
    role: Role
    admin_role: Role


class IssuedResponse(BaseModel):
    credential_id: int


class OwnerResponse(BaseModel):
    credential_id: int
    owner: str


class HoldingsResponse(BaseModel):
    identity: str
    balance: int
    credentials: list[CredentialRecord]


class TotalResponse(BaseModel):
    total: int


class AuditVerifyResponse(BaseModel):
    valid: bool
    event_count: int
    last_event_hash: Optional[str] = None


# ============================================================
# Role Commands
# ============================================================

@router.post("/roles/grant", response_model=RoleChangeResponse, tags=["Roles"])
def grant_role(
    request: Request,
    command: RoleCommand,
    registry: CertificateRegistry = Depends(get_registry),
):
    """
    Grant a role. The caller must hold the role's admin role.

    Granting a role the identity already holds changes nothing.
    """
    caller = authenticate(request, command, "grant_role")
    changed = registry.grant_role(caller, command.role, command.identity)
    return RoleChangeResponse(role=command.role, identity=command.identity, changed=changed)


@router.post("/roles/revoke", response_model=RoleChangeResponse, tags=["Roles"])
def revoke_role(
    request: Request,
    command: RoleCommand,
    registry: CertificateRegistry = Depends(get_registry),
):
    caller = authenticate(request, command, "revoke_role")
    changed = registry.revoke_role(caller, command.role, command.identity)
    return RoleChangeResponse(role=command.role, identity=command.identity, changed=changed)


@router.post("/roles/renounce", response_model=RoleChangeResponse, tags=["Roles"])
def renounce_role(
    request: Request,
    command: RoleCommand,
    registry: CertificateRegistry = Depends(get_registry),
):
    """Drop a role held by the caller. The last RootAdmin cannot renounce."""
    caller = authenticate(request, command, "renounce_role")
    changed = registry.renounce_role(caller, command.role, command.identity)
    return RoleChangeResponse(role=command.role, identity=command.identity, changed=changed)


# ============================================================
# Role Queries
# ============================================================

@router.get("/roles/check", response_model=RoleCheckResponse, tags=["Roles"])
def check_role(
    identity: str = Query(...),
    role: Role = Query(...),
    registry: CertificateRegistry = Depends(get_registry),
):
    return RoleCheckResponse(identity=identity, role=role, has_role=registry.has_role(identity, role))


@router.get("/roles/{role}/admin", response_model=RoleAdminResponse, tags=["Roles"])
def role_admin(role: Role):
    return RoleAdminResponse(role=role, admin_role=CertificateRegistry.get_role_admin(role))


@router.get("/roles/{role}/members", response_model=list[str], tags=["Roles"])
def role_members(role: Role, registry: CertificateRegistry = Depends(get_registry)):
    return registry.members_of(role)


# ============================================================
# Issuer Commands
# ============================================================

@router.post(
    "/issuers",
    response_model=IssuerRecord,
    status_code=status.HTTP_201_CREATED,
    tags=["Issuers"],
)
def add_issuer(
    request: Request,
    command: AddIssuerCommand,
    registry: CertificateRegistry = Depends(get_registry),
):
    """
    Admit a new issuer (Admin only).

    The issuer starts Active and is granted the Issuer role.
    An identity can be admitted once; retries fail with IssuerAlreadyExists.
    """
    caller = authenticate(request, command, "add_issuer")
    return registry.add_issuer(caller, command.identity, command.name, command.endpoint)


@router.post("/issuers/status", response_model=IssuerRecord, tags=["Issuers"])
def update_issuer_status(
    request: Request,
    command: UpdateIssuerStatusCommand,
    registry: CertificateRegistry = Depends(get_registry),
):
    """
    Change an issuer's status (Admin only).

    Active <-> Suspended, either -> Deactivated. Deactivated is final
    and revokes the Issuer role.
    """
    caller = authenticate(request, command, "update_issuer_status")
    return registry.update_issuer_status(caller, command.identity, command.status)


# ============================================================
# Issuer Queries
# ============================================================

@router.get("/issuers", response_model=list[IssuerRecord], tags=["Issuers"])
def list_issuers(
    status: Optional[IssuerStatus] = Query(None),
    registry: CertificateRegistry = Depends(get_registry),
):
    return registry.list_issuers(status)


@router.get("/issuers/counts", response_model=dict[str, int], tags=["Issuers"])
def issuer_counts(registry: CertificateRegistry = Depends(get_registry)):
    return registry.issuer_counts()


@router.get("/issuers/lookup", response_model=IssuerRecord, tags=["Issuers"])
def get_issuer(
    identity: str = Query(...),
    registry: CertificateRegistry = Depends(get_registry),
):
    """Issuer record. Identities never added get an empty record (status null)."""
    return registry.get_issuer(identity)


# ============================================================
# Credential Commands
# ============================================================

@router.post(
    "/credentials",
    response_model=IssuedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Credentials"],
)
def issue_credential(
    request: Request,
    command: IssueCredentialCommand,
    registry: CertificateRegistry = Depends(get_registry),
):
    """Mint a credential. The caller must be an Active issuer."""
    caller = authenticate(request, command, "issue_credential")
    credential_id = registry.issue_credential(
        caller,
        command.recipient,
        command.recipient_name,
        command.title,
    )
    return IssuedResponse(credential_id=credential_id)


@router.post("/credentials/transfer", tags=["Credentials"])
def transfer_credential(
    request: Request,
    command: TransferCommand,
    registry: CertificateRegistry = Depends(get_registry),
):
    """Credentials are soulbound: this always fails with TransferForbidden."""
    caller = authenticate(request, command, "transfer_credential")
    registry.transfer_credential(caller, command.credential_id, command.to)


# ============================================================
# Credential Queries
# ============================================================

@router.get("/credentials/total", response_model=TotalResponse, tags=["Credentials"])
def total_credentials(registry: CertificateRegistry = Depends(get_registry)):
    return TotalResponse(total=registry.total_credentials())


@router.get("/credentials/{credential_id}", response_model=CredentialRecord, tags=["Credentials"])
def get_credential(credential_id: int, registry: CertificateRegistry = Depends(get_registry)):
    return registry.get_credential(credential_id)


@router.get(
    "/credentials/{credential_id}/details",
    response_model=CredentialDetails,
    tags=["Credentials"],
)
def get_credential_details(
    credential_id: int,
    registry: CertificateRegistry = Depends(get_registry),
):
    """Credential plus the current record of the issuer that minted it."""
    return registry.get_credential_details(credential_id)


@router.get(
    "/credentials/{credential_id}/owner",
    response_model=OwnerResponse,
    tags=["Credentials"],
)
def owner_of(credential_id: int, registry: CertificateRegistry = Depends(get_registry)):
    return OwnerResponse(credential_id=credential_id, owner=registry.owner_of(credential_id))


@router.get("/holders/credentials", response_model=HoldingsResponse, tags=["Credentials"])
def credentials_of(
    identity: str = Query(...),
    registry: CertificateRegistry = Depends(get_registry),
):
    credentials = [registry.get_credential(i) for i in registry.credentials_of(identity)]
    return HoldingsResponse(
        identity=identity,
        balance=registry.balance_of(identity),
        credentials=credentials,
    )


# ============================================================
# Audit
# ============================================================

@router.get("/audit/events", response_model=list[AuditEvent], tags=["Audit"])
def audit_events(
    since: int = Query(0, ge=0),
    registry: CertificateRegistry = Depends(get_registry),
):
    return registry.audit_events(since)


@router.get("/audit/verify", response_model=AuditVerifyResponse, tags=["Audit"])
def verify_audit(registry: CertificateRegistry = Depends(get_registry)):
    head = registry.audit_log.get_head()
    return AuditVerifyResponse(
        valid=registry.verify_audit_log(),
        event_count=head.next_sequence,
        last_event_hash=head.last_event_hash,
    )
