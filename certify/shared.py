"""
Shared Registry Instance

Holds the process-wide audit log and certificate registry.
Supports both in-memory (development) and PostgreSQL (production) audit logs.

Mode is determined by environment variables:
- AUDITLOG_DRIVER: Explicit driver selection (memory, psycopg2)
- DATABASE_URL or DATABASE_HOST: Database connection (auto-selects psycopg2)
- Neither set: Use in-memory (default for development)

BOOTSTRAP:
- CERTIFY_ROOT_ADMIN names the identity seeded as RootAdmin
- The registry is created on first use, exactly once per process
"""

from threading import Lock
from typing import Optional

from certify.core import CertificateRegistry
from certify.db.config import (
    AuditLogDriver,
    DatabaseConfig,
    get_auditlog_driver,
    get_database_url,
    get_root_admin,
)
from certify.db.store import AuditLog, AuditLogUnavailable, InMemoryAuditLog
from certify.observability import get_logger

logger = get_logger(__name__)

_lock = Lock()
_registry: Optional[CertificateRegistry] = None


class ConfigurationError(Exception):
    """Required configuration is missing or invalid."""
    pass


def create_audit_log() -> AuditLog:
    """
    Create the appropriate AuditLog based on configuration.

    Returns:
        InMemoryAuditLog for development/testing
        PostgresAuditLog for production (when DATABASE_URL is set)
    """
    driver = get_auditlog_driver()

    if driver == AuditLogDriver.MEMORY:
        logger.info("Using in-memory audit log (no persistence)")
        return InMemoryAuditLog()

    db_url = get_database_url()
    if db_url is None:
        logger.warning(
            "Audit log driver needs a database but none is configured; using in-memory log",
            driver=driver.value,
        )
        return InMemoryAuditLog()

    config = DatabaseConfig.from_url(db_url) if "://" in db_url else DatabaseConfig.from_env()
    return _create_psycopg2_log(config)


def _create_psycopg2_log(config: DatabaseConfig) -> AuditLog:
    """Create PostgresAuditLog with psycopg2 and make sure its tables exist."""
    import psycopg2
    from certify.db.postgres import PostgresAuditLog

    def connection_factory():
        return psycopg2.connect(config.to_dsn())

    log = PostgresAuditLog(connection_factory)
    try:
        log.ensure_schema()
    except AuditLogUnavailable as e:
        raise AuditLogUnavailable(
            f"PostgreSQL at {config.host}:{config.port}/{config.database} is unavailable: {e}"
        ) from e

    logger.info(
        "PostgreSQL audit log ready (psycopg2)",
        host=config.host,
        port=config.port,
        database=config.database,
    )
    return log


def create_registry(root_admin: Optional[str] = None) -> CertificateRegistry:
    """
    Build a registry from configuration.

    Raises:
        ConfigurationError: no bootstrap RootAdmin identity is configured
    """
    root_admin = root_admin or get_root_admin()
    if root_admin is None:
        raise ConfigurationError(
            "CERTIFY_ROOT_ADMIN is not set. Generate an identity with "
            "'python tools/manage.py keygen' and export its public key."
        )

    registry = CertificateRegistry(root_admin, audit_log=create_audit_log())
    logger.info(
        "Registry bootstrapped",
        root_admin=root_admin,
        audit_log=type(registry.audit_log).__name__,
    )
    return registry


def get_registry() -> CertificateRegistry:
    """Get the shared registry, creating it on first use."""
    global _registry
    with _lock:
        if _registry is None:
            _registry = create_registry()
        return _registry


def set_registry(registry: Optional[CertificateRegistry]) -> None:
    """Replace the shared registry (used by create_app and tests)."""
    global _registry
    with _lock:
        _registry = registry
