"""
Capability Schema

The closed set of roles the registry understands.
Roles are tags, not types: an identity may hold any combination of them.
"""

from enum import Enum


class Role(str, Enum):
    """
    Roles that gate registry operations.

    Never add a role without also giving it an admin role in
    certify.core.capabilities.ROLE_ADMINS.
    """
    ROOT_ADMIN = "root_admin"   # Grants and revokes Admin
    ADMIN = "admin"             # Manages issuers
    ISSUER = "issuer"           # Mints credentials
