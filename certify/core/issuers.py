"""
Issuer Lifecycle Manager

Owns the per-issuer records and their status state machine:

    ACTIVE <-> SUSPENDED
    ACTIVE  -> DEACTIVATED
    SUSPENDED -> DEACTIVATED
    DEACTIVATED: terminal

Every lifecycle change also touches role membership through the
Capability Registry: admission grants Issuer, deactivation revokes it.

EXISTENCE RULE: an issuer exists iff its record has a registration
timestamp. Holding the Issuer role says nothing about existence.
"""

from typing import Optional

from ..schemas import (
    EventType,
    ISSUER_TRANSITIONS,
    IssuerAddedPayload,
    IssuerRecord,
    IssuerRoleRevokedPayload,
    IssuerStatus,
    IssuerStatusUpdatedPayload,
    Role,
)
from .capabilities import CapabilityRegistry, require_identity
from .errors import (
    IssuerAlreadyExists,
    IssuerDeactivated,
    IssuerNotFound,
    StatusUnchanged,
)
from .transaction import Transaction


class IssuerLifecycleManager:
    """Identity-keyed arena of issuer records."""

    def __init__(self, capabilities: CapabilityRegistry):
        self._capabilities = capabilities
        self._issuers: dict[str, IssuerRecord] = {}

    # ================================================================
    # QUERIES
    # ================================================================

    def exists(self, identity: str) -> bool:
        record = self._issuers.get(identity)
        return record is not None and record.exists

    def get_issuer(self, identity: str) -> IssuerRecord:
        """The issuer's record, or the empty record if never admitted."""
        if not self.exists(identity):
            return IssuerRecord.empty(identity)
        return self._issuers[identity]

    def is_deactivated(self, identity: str) -> bool:
        return self.get_issuer(identity).status == IssuerStatus.DEACTIVATED

    def list_issuers(self, status: Optional[IssuerStatus] = None) -> list[IssuerRecord]:
        """Issuers in admission order, optionally filtered by status."""
        records = [r for r in self._issuers.values() if r.exists]
        if status is not None:
            records = [r for r in records if r.status == status]
        return records

    def counts(self) -> dict[str, int]:
        records = self.list_issuers()
        result = {"total": len(records)}
        for status in IssuerStatus:
            result[status.value.lower()] = sum(1 for r in records if r.status == status)
        return result

    # ================================================================
    # OPERATIONS
    # ================================================================

    def add_issuer(
        self,
        tx: Transaction,
        identity: str,
        name: str,
        endpoint: str,
    ) -> IssuerRecord:
        """
        Admit a new issuer: grant the Issuer role and create an Active record.

        Raises:
            Unauthorized: caller is not an Admin
            InvalidIdentity: identity is empty
            IssuerAlreadyExists: a record already exists, whatever its status
        """
        self._capabilities.require_role(tx.caller, Role.ADMIN)
        require_identity(identity, "identity")

        if self.exists(identity):
            raise IssuerAlreadyExists(identity)

        record = IssuerRecord(
            identity=identity,
            name=name,
            endpoint=endpoint,
            status=IssuerStatus.ACTIVE,
            registered_at=tx.timestamp,
        )

        self._capabilities.grant(tx, Role.ISSUER, identity)
        tx.emit(
            EventType.ISSUER_ADDED,
            IssuerAddedPayload(identity=identity, name=name, endpoint=endpoint),
        )
        tx.on_commit(lambda: self._issuers.__setitem__(identity, record))
        return record

    def update_issuer_status(
        self,
        tx: Transaction,
        identity: str,
        new_status: IssuerStatus,
    ) -> IssuerRecord:
        """
        Move an issuer through the status state machine.

        Deactivation revokes the Issuer role in the same operation.
        IssuerRoleRevoked is emitted only if the role was still held.

        Raises:
            Unauthorized: caller is not an Admin
            IssuerNotFound: no record for identity
            IssuerDeactivated: the record is already in the terminal state
            StatusUnchanged: new_status equals the current status
        """
        self._capabilities.require_role(tx.caller, Role.ADMIN)

        if not self.exists(identity):
            raise IssuerNotFound(identity)

        current = self._issuers[identity]
        if not ISSUER_TRANSITIONS[current.status]:
            raise IssuerDeactivated(identity)

        if new_status == current.status:
            raise StatusUnchanged(identity, new_status.value)

        updated = current.model_copy(update={"status": new_status})

        # An Admin may already have revoked the role by hand; no second event then.
        if new_status == IssuerStatus.DEACTIVATED and self._capabilities.revoke(
            tx, Role.ISSUER, identity
        ):
            tx.emit(
                EventType.ISSUER_ROLE_REVOKED,
                IssuerRoleRevokedPayload(identity=identity),
            )

        tx.emit(
            EventType.ISSUER_STATUS_UPDATED,
            IssuerStatusUpdatedPayload(
                identity=identity,
                old_status=current.status,
                new_status=new_status,
            ),
        )
        tx.on_commit(lambda: self._issuers.__setitem__(identity, updated))
        return updated
