"""
Credential Ledger

Append-only table of minted credentials keyed by 0, 1, 2, ...

Issuance is gated twice: the caller must hold the Issuer role AND have
an Active issuer record. A Suspended issuer keeps the role but cannot mint.

The counter only moves when a credential is actually stored; a rejected
issuance consumes no identifier.
"""

from ..schemas import (
    CredentialDetails,
    CredentialIssuedPayload,
    CredentialRecord,
    EventType,
    Role,
)
from .capabilities import CapabilityRegistry, require_identity
from .errors import CredentialNotFound, IssuerNotActive
from .issuers import IssuerLifecycleManager
from .ownership import OwnershipGuard
from .transaction import Transaction


class CredentialLedger:
    """Integer-keyed arena of credential records."""

    def __init__(
        self,
        capabilities: CapabilityRegistry,
        issuers: IssuerLifecycleManager,
        guard: OwnershipGuard,
    ):
        self._capabilities = capabilities
        self._issuers = issuers
        self._guard = guard
        self._credentials: dict[int, CredentialRecord] = {}
        self._next_id = 0

    @property
    def total(self) -> int:
        return self._next_id

    def exists(self, credential_id: int) -> bool:
        record = self._credentials.get(credential_id)
        return record is not None and record.issued_at is not None

    def get_credential(self, credential_id: int) -> CredentialRecord:
        if not self.exists(credential_id):
            raise CredentialNotFound(credential_id)
        return self._credentials[credential_id]

    def get_details(self, credential_id: int) -> CredentialDetails:
        record = self.get_credential(credential_id)
        return CredentialDetails(
            credential=record,
            issuer=self._issuers.get_issuer(record.issuer),
        )

    def issue_credential(
        self,
        tx: Transaction,
        recipient: str,
        recipient_name: str,
        title: str,
    ) -> CredentialRecord:
        """
        Mint a credential from the calling issuer to recipient.

        Raises:
            Unauthorized: caller does not hold the Issuer role
            IssuerNotActive: caller's issuer record is missing or not Active
            InvalidIdentity: recipient is empty
        """
        self._capabilities.require_role(tx.caller, Role.ISSUER)

        issuer = self._issuers.get_issuer(tx.caller)
        if not issuer.is_active:
            raise IssuerNotActive(
                tx.caller,
                issuer.status.value if issuer.status is not None else None,
            )

        require_identity(recipient, "recipient")

        credential_id = self._next_id
        record = CredentialRecord(
            credential_id=credential_id,
            recipient_name=recipient_name,
            recipient=recipient,
            issuer=tx.caller,
            issued_at=tx.timestamp,
            title=title,
        )

        self._guard.assign(tx, credential_id, recipient, minting=True)
        tx.emit(
            EventType.CREDENTIAL_ISSUED,
            CredentialIssuedPayload(
                credential_id=credential_id,
                issuer=tx.caller,
                recipient=recipient,
            ),
        )

        def _store() -> None:
            self._credentials[credential_id] = record
            self._next_id = credential_id + 1

        tx.on_commit(_store)
        return record
