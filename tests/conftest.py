"""
Shared fixtures for the registry tests.

Core tests use readable identities ("root", "admin", ...): the core only
requires non-blank strings. API tests use real Ed25519 identities.
"""

from datetime import datetime, timedelta, timezone

import pytest

from certify.core import CertificateRegistry, MonotonicClock
from certify.db.store import AuditLogUnavailable, InMemoryAuditLog
from certify.observability import get_metrics
from certify.schemas import Role


ROOT = "root"
ADMIN = "admin"
ISSUER = "issuer-university"
ISSUER_2 = "issuer-academy"
RECIPIENT = "recipient-ada"
OUTSIDER = "outsider"


class SteppingClock:
    """Deterministic time source: each call is one second after the last."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


class FlakyAuditLog(InMemoryAuditLog):
    """In-memory log whose next commit can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_next = False

    def _do_commit(self, ctx, events):
        if self.fail_next:
            self.fail_next = False
            raise AuditLogUnavailable("simulated database outage")
        return super()._do_commit(ctx, events)


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics().reset()
    yield
    get_metrics().reset()


@pytest.fixture
def audit_log():
    return FlakyAuditLog()


@pytest.fixture
def registry(audit_log):
    """Registry with ROOT as RootAdmin and ADMIN appointed."""
    reg = CertificateRegistry(ROOT, audit_log=audit_log, clock=MonotonicClock(SteppingClock()))
    reg.grant_role(ROOT, Role.ADMIN, ADMIN)
    return reg


@pytest.fixture
def registry_with_issuer(registry):
    """Registry with ISSUER admitted and Active."""
    registry.add_issuer(ADMIN, ISSUER, "State University", "https://cert.example.edu")
    return registry
