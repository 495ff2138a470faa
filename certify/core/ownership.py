"""
Ownership / Transfer Guard

Every change of a credential's owner passes through assign().
Exactly one assignment per credential is ever accepted: the one made
while minting, from the 'no owner' sentinel to the recipient.
Everything else is rejected with TransferForbidden, whoever asks.
"""

from typing import Optional

from .errors import TransferForbidden
from .transaction import Transaction


NO_OWNER: Optional[str] = None


class OwnershipGuard:
    """Owner table for credentials, plus per-owner holdings."""

    def __init__(self) -> None:
        self._owners: dict[int, str] = {}
        self._holdings: dict[str, list[int]] = {}

    def owner_of(self, credential_id: int) -> Optional[str]:
        return self._owners.get(credential_id, NO_OWNER)

    def balance_of(self, identity: str) -> int:
        return len(self._holdings.get(identity, ()))

    def holdings(self, identity: str) -> list[int]:
        return list(self._holdings.get(identity, ()))

    def assign(
        self,
        tx: Transaction,
        credential_id: int,
        new_owner: str,
        minting: bool = False,
    ) -> None:
        """
        The single ownership-mutation path.

        Raises:
            TransferForbidden: unless minting a credential that has no owner yet
        """
        if not minting:
            raise TransferForbidden(credential_id)

        if self.owner_of(credential_id) is not NO_OWNER:
            raise TransferForbidden(
                credential_id,
                detail=f"Credential {credential_id} already has an owner",
            )

        def _record() -> None:
            self._owners[credential_id] = new_owner
            self._holdings.setdefault(new_owner, []).append(credential_id)

        tx.on_commit(_record)
