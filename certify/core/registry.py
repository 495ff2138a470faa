"""
Certificate Registry - The Heart of the System

The registry composes four owned components:
- CapabilityRegistry: who holds which role
- IssuerLifecycleManager: issuer records and their status state machine
- CredentialLedger: minted credentials keyed 0, 1, 2, ...
- OwnershipGuard: the single ownership-mutation path

Every public operation runs as one unit of work:

    1. Acquire the serial lock (operations are totally ordered)
    2. Validate against settled state, collecting events and effects
    3. Commit the events to the audit log as one batch
    4. Apply the effects to in-memory state
    5. Publish the committed batch to subscribers

A failure in steps 2 or 3 leaves no state change and no audit event.
Effects cannot fail: every precondition is checked before they are queued.

ARCHITECTURE NOTE:
The audit log is written, never read back. Registry state is owned by
this process and seeded from the bootstrap identity. A registry started
on a log that already holds events continues that chain with a fresh
bootstrap batch; it does not rebuild state from the earlier events.

Committed batches are delivered to subscribers in sequence order. A
subscriber that calls back into the registry has its batch queued and
delivered after the batch it is handling.
"""

import time
from collections import deque
from contextlib import contextmanager
from threading import RLock
from typing import Generator, Optional

from ..db.store import AuditLog, AuditSubscriber, InMemoryAuditLog
from ..observability import get_logger, get_metrics
from ..schemas import (
    AuditEvent,
    CredentialDetails,
    CredentialRecord,
    EventType,
    IssuerRecord,
    IssuerStatus,
    Role,
    RoleAdminChangedPayload,
    RoleGrantedPayload,
)
from .capabilities import CapabilityRegistry
from .clock import MonotonicClock
from .credentials import CredentialLedger
from .errors import CredentialNotFound, IssuerDeactivated, RegistryError
from .issuers import IssuerLifecycleManager
from .ownership import OwnershipGuard
from .transaction import Transaction

logger = get_logger(__name__)


class CertificateRegistry:
    """
    The public face of the registry.

    GUARANTEES:
    - Operations are serialized; none observes another half-applied
    - Failure is all-or-nothing, including multi-step operations
      (deactivation = status change + role revoke)
    - Credential ids are 0, 1, 2, ... with no gaps and no reuse
    - A credential's owner never changes after minting
    - A Deactivated issuer never holds the Issuer role again
    """

    def __init__(
        self,
        root_admin: str,
        audit_log: Optional[AuditLog] = None,
        clock: Optional[MonotonicClock] = None,
    ):
        """
        Initialize the registry and seed the bootstrap RootAdmin.

        Args:
            root_admin: identity seeded as the one and only initial RootAdmin
            audit_log: AuditLog implementation. Defaults to InMemoryAuditLog.
            clock: time source for registration and issue timestamps
        """
        self._audit_log = audit_log if audit_log is not None else InMemoryAuditLog()
        self._clock = clock if clock is not None else MonotonicClock()
        self._serial = RLock()
        self._outbox: deque[list[AuditEvent]] = deque()
        self._delivering = False

        self._capabilities = CapabilityRegistry(root_admin)
        self._issuers = IssuerLifecycleManager(self._capabilities)
        self._guard = OwnershipGuard()
        self._credentials = CredentialLedger(self._capabilities, self._issuers, self._guard)

        self._bootstrap(root_admin)

    def _bootstrap(self, root_admin: str) -> None:
        head = self._audit_log.get_head()
        if not head.is_empty:
            logger.warning(
                "Continuing an existing audit chain; registry state starts empty",
                existing_events=head.next_sequence,
                last_hash=head.last_event_hash,
            )

        with self._operation(root_admin, "bootstrap") as tx:
            tx.emit(
                EventType.ROLE_GRANTED,
                RoleGrantedPayload(role=Role.ROOT_ADMIN, identity=root_admin, sender=root_admin),
            )
            tx.emit(
                EventType.ROLE_ADMIN_CHANGED,
                RoleAdminChangedPayload(
                    role=Role.ISSUER,
                    previous_admin_role=Role.ROOT_ADMIN,
                    new_admin_role=self._capabilities.get_role_admin(Role.ISSUER),
                ),
            )

    # ================================================================
    # UNIT OF WORK
    # ================================================================

    @contextmanager
    def _operation(self, caller: str, name: str) -> Generator[Transaction, None, None]:
        """
        Run one operation under the serial lock.

        The body validates and records; commit and apply happen on exit.
        """
        with self._serial:
            tx = Transaction(caller, self._clock.now())
            try:
                yield tx
            except RegistryError as e:
                get_metrics().record_rejection(e.code)
                logger.info(
                    f"{name} rejected: {e.code}",
                    operation=name,
                    caller=caller,
                    error=e.code,
                    detail=str(e),
                )
                raise

            pending = tx.pending_events
            start = time.perf_counter()
            committed = self._audit_log.append(pending, tx.timestamp)
            latency_ms = (time.perf_counter() - start) * 1000

            tx.apply()

            if committed:
                get_metrics().record_events((e.event_type.value for e in committed), latency_ms)
                logger.info(
                    f"{name} committed",
                    operation=name,
                    caller=caller,
                    first_sequence=committed[0].sequence_number,
                    event_count=len(committed),
                )
                self._outbox.append(committed)
            self._deliver()

    def _deliver(self) -> None:
        """Drain queued batches in order. Nested operations only enqueue."""
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._outbox:
                self._audit_log.publish(self._outbox.popleft())
        finally:
            self._delivering = False

    # ================================================================
    # CAPABILITIES
    # ================================================================

    def has_role(self, identity: str, role: Role) -> bool:
        with self._serial:
            return self._capabilities.has_role(identity, role)

    def roles_of(self, identity: str) -> frozenset[Role]:
        with self._serial:
            return self._capabilities.roles_of(identity)

    def members_of(self, role: Role) -> list[str]:
        with self._serial:
            return self._capabilities.members_of(role)

    @staticmethod
    def get_role_admin(role: Role) -> Role:
        return CapabilityRegistry.get_role_admin(role)

    def grant_role(self, caller: str, role: Role, identity: str) -> bool:
        """
        Grant role to identity. Returns False if identity already held it.

        Raises:
            Unauthorized: caller does not hold the role's admin role
            InvalidIdentity: identity is empty
            IssuerDeactivated: role is Issuer and identity was deactivated
        """
        with self._operation(caller, "grant_role") as tx:
            if role == Role.ISSUER:
                self._capabilities.require_role(caller, self.get_role_admin(role))
                if self._issuers.is_deactivated(identity):
                    raise IssuerDeactivated(identity)
            return self._capabilities.grant(tx, role, identity)

    def revoke_role(self, caller: str, role: Role, identity: str) -> bool:
        """Revoke role from identity. Returns False if identity did not hold it."""
        with self._operation(caller, "revoke_role") as tx:
            return self._capabilities.revoke(tx, role, identity)

    def renounce_role(self, caller: str, role: Role, identity: str) -> bool:
        """Drop a role held by the caller itself."""
        with self._operation(caller, "renounce_role") as tx:
            return self._capabilities.renounce(tx, role, identity)

    # ================================================================
    # ISSUERS
    # ================================================================

    def add_issuer(self, caller: str, identity: str, name: str, endpoint: str) -> IssuerRecord:
        with self._operation(caller, "add_issuer") as tx:
            return self._issuers.add_issuer(tx, identity, name, endpoint)

    def update_issuer_status(
        self,
        caller: str,
        identity: str,
        new_status: IssuerStatus,
    ) -> IssuerRecord:
        with self._operation(caller, "update_issuer_status") as tx:
            return self._issuers.update_issuer_status(tx, identity, IssuerStatus(new_status))

    def get_issuer(self, identity: str) -> IssuerRecord:
        """Never fails: an identity that was never added gets the empty record."""
        with self._serial:
            return self._issuers.get_issuer(identity)

    def list_issuers(self, status: Optional[IssuerStatus] = None) -> list[IssuerRecord]:
        with self._serial:
            return self._issuers.list_issuers(status)

    def issuer_counts(self) -> dict[str, int]:
        with self._serial:
            return self._issuers.counts()

    # ================================================================
    # CREDENTIALS
    # ================================================================

    def issue_credential(
        self,
        caller: str,
        recipient: str,
        recipient_name: str,
        title: str,
    ) -> int:
        """Mint a credential from caller to recipient. Returns the new id."""
        with self._operation(caller, "issue_credential") as tx:
            record = self._credentials.issue_credential(tx, recipient, recipient_name, title)
        return record.credential_id

    def get_credential(self, credential_id: int) -> CredentialRecord:
        with self._serial:
            return self._credentials.get_credential(credential_id)

    def get_credential_details(self, credential_id: int) -> CredentialDetails:
        with self._serial:
            return self._credentials.get_details(credential_id)

    def owner_of(self, credential_id: int) -> str:
        with self._serial:
            owner = self._guard.owner_of(credential_id)
            if owner is None:
                raise CredentialNotFound(credential_id)
            return owner

    def balance_of(self, identity: str) -> int:
        with self._serial:
            return self._guard.balance_of(identity)

    def credentials_of(self, identity: str) -> list[int]:
        with self._serial:
            return self._guard.holdings(identity)

    def total_credentials(self) -> int:
        with self._serial:
            return self._credentials.total

    def transfer_credential(self, caller: str, credential_id: int, to: str) -> None:
        """
        Credentials are soulbound.

        Raises:
            TransferForbidden: always, for any caller, credential and target
        """
        with self._operation(caller, "transfer_credential") as tx:
            self._guard.assign(tx, credential_id, to)

    # ================================================================
    # AUDIT
    # ================================================================

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    def audit_events(self, since: int = 0) -> list[AuditEvent]:
        """Committed audit events with sequence_number >= since."""
        if since <= 0:
            return self._audit_log.list_all()
        return self._audit_log.list_since(since)

    def verify_audit_log(self) -> bool:
        return self._audit_log.verify_integrity()

    def subscribe(self, callback: AuditSubscriber) -> None:
        self._audit_log.subscribe(callback)

    def unsubscribe(self, callback: AuditSubscriber) -> None:
        self._audit_log.unsubscribe(callback)
