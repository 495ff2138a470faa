"""
Storage Layer for the Certificate Registry

Provides:
- AuditLog abstraction (in-memory for dev, PostgreSQL for prod)
- Environment-based configuration
"""

from .store import (
    AuditLog,
    InMemoryAuditLog,
    AuditLogError,
    AuditLogUnavailable,
    ChainIntegrityError,
    ChainHead,
    PendingEvent,
)
from .config import (
    AuditLogDriver,
    DatabaseConfig,
    get_auditlog_driver,
    get_database_url,
    get_root_admin,
)

__all__ = [
    "AuditLog",
    "InMemoryAuditLog",
    "AuditLogError",
    "AuditLogUnavailable",
    "ChainIntegrityError",
    "ChainHead",
    "PendingEvent",
    "AuditLogDriver",
    "DatabaseConfig",
    "get_auditlog_driver",
    "get_database_url",
    "get_root_admin",
]
