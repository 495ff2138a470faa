"""
Capability Registry

Maps identities to the roles they hold and answers "does X hold R".
Each role is administered by exactly one role:

    RootAdmin -> RootAdmin   (self-administering, seeded once at bootstrap)
    Admin     -> RootAdmin
    Issuer    -> Admin

Role membership is owned here and nowhere else. Other components change
it only by calling grant()/revoke() with the caller's authority.
"""

from typing import Optional

from ..schemas import (
    EventType,
    Role,
    RoleGrantedPayload,
    RoleRevokedPayload,
)
from .errors import InvalidIdentity, Unauthorized
from .transaction import Transaction


ROLE_ADMINS: dict[Role, Role] = {
    Role.ROOT_ADMIN: Role.ROOT_ADMIN,
    Role.ADMIN: Role.ROOT_ADMIN,
    Role.ISSUER: Role.ADMIN,
}


def require_identity(identity: Optional[str], argument: str) -> str:
    """Reject the empty identity, which stands for 'no owner'."""
    if not isinstance(identity, str) or not identity.strip():
        raise InvalidIdentity(argument)
    return identity


class CapabilityRegistry:
    """Identity -> set of roles, plus the fixed admin-of-role mapping."""

    def __init__(self, root_admin: str):
        require_identity(root_admin, "root_admin")
        self._members: dict[str, set[Role]] = {root_admin: {Role.ROOT_ADMIN}}

    # ================================================================
    # QUERIES
    # ================================================================

    def has_role(self, identity: str, role: Role) -> bool:
        return role in self._members.get(identity, ())

    def roles_of(self, identity: str) -> frozenset[Role]:
        return frozenset(self._members.get(identity, ()))

    def members_of(self, role: Role) -> list[str]:
        """Holders of a role, in order of first admission."""
        return [identity for identity, roles in self._members.items() if role in roles]

    @staticmethod
    def get_role_admin(role: Role) -> Role:
        return ROLE_ADMINS[role]

    def require_role(self, identity: str, role: Role) -> None:
        if not self.has_role(identity, role):
            raise Unauthorized(identity, role.value)

    # ================================================================
    # MUTATIONS
    # ================================================================

    def grant(self, tx: Transaction, role: Role, identity: str) -> bool:
        """
        Grant role to identity with the caller's authority.

        Returns False (no event, no change) if identity already holds role.
        """
        self.require_role(tx.caller, ROLE_ADMINS[role])
        require_identity(identity, "identity")

        if self.has_role(identity, role):
            return False

        tx.emit(
            EventType.ROLE_GRANTED,
            RoleGrantedPayload(role=role, identity=identity, sender=tx.caller),
        )
        tx.on_commit(lambda: self._members.setdefault(identity, set()).add(role))
        return True

    def revoke(self, tx: Transaction, role: Role, identity: str) -> bool:
        """
        Revoke role from identity with the caller's authority.

        Returns False (no event, no change) if identity does not hold role.
        """
        self.require_role(tx.caller, ROLE_ADMINS[role])
        require_identity(identity, "identity")
        return self._remove(tx, role, identity)

    def renounce(self, tx: Transaction, role: Role, identity: str) -> bool:
        """Drop a role the caller itself holds."""
        if identity != tx.caller:
            raise Unauthorized(
                tx.caller,
                role.value,
                detail=f"Identity {tx.caller!r} can only renounce roles for itself",
            )
        return self._remove(tx, role, identity)

    def _remove(self, tx: Transaction, role: Role, identity: str) -> bool:
        if not self.has_role(identity, role):
            return False

        if role == Role.ROOT_ADMIN and len(self.members_of(Role.ROOT_ADMIN)) <= 1:
            raise Unauthorized(
                tx.caller,
                role.value,
                detail="Cannot remove the last RootAdmin. Grant RootAdmin to another identity first.",
            )

        tx.emit(
            EventType.ROLE_REVOKED,
            RoleRevokedPayload(role=role, identity=identity, sender=tx.caller),
        )
        tx.on_commit(lambda: self._members[identity].discard(role))
        return True
