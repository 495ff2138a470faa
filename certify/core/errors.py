"""
Registry error taxonomy.

Every failure is local and synchronous. It aborts the whole operation
with no state change and no audit event, and reaches the caller verbatim.
`code` is stable and machine readable; the message is for humans.
"""

from typing import Optional


class RegistryError(Exception):
    """Base exception for registry errors."""
    code = "RegistryError"


class Unauthorized(RegistryError):
    """Caller lacks the role an operation requires."""
    code = "Unauthorized"

    def __init__(self, caller: str, required_role: str, detail: Optional[str] = None):
        self.caller = caller
        self.required_role = required_role
        super().__init__(
            detail or f"Identity {caller!r} is missing required role {required_role!r}"
        )


class InvalidIdentity(RegistryError):
    """An identity argument is empty (the 'no owner' sentinel)."""
    code = "InvalidIdentity"

    def __init__(self, argument: str):
        self.argument = argument
        super().__init__(f"Identity argument {argument!r} must be a non-empty identity")


class IssuerAlreadyExists(RegistryError):
    code = "IssuerAlreadyExists"

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"Issuer {identity!r} already exists")


class IssuerNotFound(RegistryError):
    code = "IssuerNotFound"

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"Issuer {identity!r} does not exist")


class IssuerDeactivated(RegistryError):
    """Deactivated is terminal. No transition or re-grant leaves it."""
    code = "IssuerDeactivated"

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(
            f"Issuer {identity!r} is deactivated. Deactivation is permanent."
        )


class StatusUnchanged(RegistryError):
    code = "StatusUnchanged"

    def __init__(self, identity: str, status: str):
        self.identity = identity
        self.status = status
        super().__init__(f"Issuer {identity!r} already has status {status!r}")


class IssuerNotActive(RegistryError):
    """Issuer holds the role but its record is not Active."""
    code = "IssuerNotActive"

    def __init__(self, identity: str, status: Optional[str]):
        self.identity = identity
        self.status = status
        super().__init__(
            f"Issuer {identity!r} has status {status!r}. "
            "Only Active issuers can issue credentials."
        )


class CredentialNotFound(RegistryError):
    code = "CredentialNotFound"

    def __init__(self, credential_id: int):
        self.credential_id = credential_id
        super().__init__(f"Credential {credential_id} does not exist")


class TransferForbidden(RegistryError):
    """Credentials are soulbound. Ownership is assigned once, at mint."""
    code = "TransferForbidden"

    def __init__(self, credential_id: int, detail: Optional[str] = None):
        self.credential_id = credential_id
        super().__init__(
            detail or f"Credential {credential_id} is soulbound and cannot be transferred"
        )
