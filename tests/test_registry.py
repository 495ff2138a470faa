"""
Tests for the Certificate Registry

Covers the full issuer and credential lifecycle:
1. Bootstrap and role administration
2. Issuer admission and status transitions
3. Credential issuance and identifier allocation
4. Non-transferability
5. All-or-nothing failure
"""

from datetime import datetime, timedelta, timezone

import pytest

from certify.core import (
    CertificateRegistry,
    CredentialNotFound,
    InvalidIdentity,
    IssuerAlreadyExists,
    IssuerDeactivated,
    IssuerNotActive,
    IssuerNotFound,
    MonotonicClock,
    OwnershipGuard,
    StatusUnchanged,
    Transaction,
    TransferForbidden,
    Unauthorized,
)
from certify.db.store import AuditLogUnavailable, InMemoryAuditLog
from certify.observability import get_metrics
from certify.schemas import EventType, IssuerStatus, Role

from conftest import ADMIN, ISSUER, ISSUER_2, OUTSIDER, RECIPIENT, ROOT


def event_types(registry, since=0):
    return [e.event_type for e in registry.audit_events(since)]


class TestBootstrap:
    """The registry starts with exactly one RootAdmin."""

    def test_root_admin_seeded(self):
        registry = CertificateRegistry(ROOT)
        assert registry.has_role(ROOT, Role.ROOT_ADMIN)
        assert registry.members_of(Role.ROOT_ADMIN) == [ROOT]
        assert registry.members_of(Role.ADMIN) == []

    def test_bootstrap_events(self):
        registry = CertificateRegistry(ROOT)
        events = registry.audit_events()

        assert [e.event_type for e in events] == [
            EventType.ROLE_GRANTED,
            EventType.ROLE_ADMIN_CHANGED,
        ]
        assert events[0].payload == {"role": "root_admin", "identity": ROOT, "sender": ROOT}
        assert events[1].payload["role"] == "issuer"
        assert events[1].payload["new_admin_role"] == "admin"
        assert events[0].is_genesis

    def test_blank_root_admin_rejected(self):
        with pytest.raises(InvalidIdentity):
            CertificateRegistry("   ")

    def test_restart_continues_existing_chain(self):
        log = InMemoryAuditLog()
        first = CertificateRegistry(ROOT, audit_log=log)
        first.grant_role(ROOT, Role.ADMIN, ADMIN)

        restarted = CertificateRegistry(ROOT, audit_log=log)

        events = restarted.audit_events()
        assert [e.sequence_number for e in events] == [0, 1, 2, 3, 4]
        assert [e.event_type for e in events[3:]] == [
            EventType.ROLE_GRANTED,
            EventType.ROLE_ADMIN_CHANGED,
        ]
        assert events[3].previous_event_hash == events[2].event_hash
        assert restarted.verify_audit_log()
        assert restarted.has_role(ROOT, Role.ROOT_ADMIN)
        assert not restarted.has_role(ADMIN, Role.ADMIN)


class TestCapabilities:
    """Role grants, revokes and the admin-of-role hierarchy."""

    def test_role_admins(self):
        assert CertificateRegistry.get_role_admin(Role.ROOT_ADMIN) == Role.ROOT_ADMIN
        assert CertificateRegistry.get_role_admin(Role.ADMIN) == Role.ROOT_ADMIN
        assert CertificateRegistry.get_role_admin(Role.ISSUER) == Role.ADMIN

    def test_root_admin_grants_admin(self, registry):
        assert registry.has_role(ADMIN, Role.ADMIN)
        assert registry.roles_of(ADMIN) == frozenset({Role.ADMIN})

        last = registry.audit_events()[-1]
        assert last.event_type == EventType.ROLE_GRANTED
        assert last.actor == ROOT
        assert last.payload == {"role": "admin", "identity": ADMIN, "sender": ROOT}

    def test_admin_cannot_grant_admin(self, registry):
        with pytest.raises(Unauthorized) as exc_info:
            registry.grant_role(ADMIN, Role.ADMIN, OUTSIDER)

        assert exc_info.value.caller == ADMIN
        assert exc_info.value.required_role == Role.ROOT_ADMIN.value
        assert not registry.has_role(OUTSIDER, Role.ADMIN)

    def test_root_admin_does_not_administer_issuers(self, registry):
        """Issuer's admin role is Admin; RootAdmin alone is not enough."""
        with pytest.raises(Unauthorized):
            registry.grant_role(ROOT, Role.ISSUER, OUTSIDER)

    def test_outsider_cannot_grant_or_revoke(self, registry):
        with pytest.raises(Unauthorized):
            registry.grant_role(OUTSIDER, Role.ISSUER, OUTSIDER)
        with pytest.raises(Unauthorized):
            registry.revoke_role(OUTSIDER, Role.ADMIN, ADMIN)

    def test_grant_is_idempotent(self, registry):
        before = len(registry.audit_events())

        assert registry.grant_role(ROOT, Role.ADMIN, ADMIN) is False
        assert len(registry.audit_events()) == before

    def test_revoke(self, registry):
        assert registry.revoke_role(ROOT, Role.ADMIN, ADMIN) is True
        assert not registry.has_role(ADMIN, Role.ADMIN)

        last = registry.audit_events()[-1]
        assert last.event_type == EventType.ROLE_REVOKED
        assert last.payload == {"role": "admin", "identity": ADMIN, "sender": ROOT}

    def test_revoke_unheld_role_is_noop(self, registry):
        before = len(registry.audit_events())

        assert registry.revoke_role(ROOT, Role.ADMIN, OUTSIDER) is False
        assert len(registry.audit_events()) == before

    def test_revoked_admin_loses_authority_immediately(self, registry):
        registry.revoke_role(ROOT, Role.ADMIN, ADMIN)

        with pytest.raises(Unauthorized):
            registry.add_issuer(ADMIN, ISSUER, "State University", "")

    def test_blank_identity_rejected(self, registry):
        with pytest.raises(InvalidIdentity):
            registry.grant_role(ROOT, Role.ADMIN, "")

    def test_renounce_own_role(self, registry):
        assert registry.renounce_role(ADMIN, Role.ADMIN, ADMIN) is True
        assert not registry.has_role(ADMIN, Role.ADMIN)
        assert registry.audit_events()[-1].payload["sender"] == ADMIN

    def test_renounce_for_someone_else_rejected(self, registry):
        with pytest.raises(Unauthorized, match="only renounce roles for itself"):
            registry.renounce_role(ROOT, Role.ADMIN, ADMIN)
        assert registry.has_role(ADMIN, Role.ADMIN)

    def test_last_root_admin_cannot_leave(self, registry):
        with pytest.raises(Unauthorized, match="last RootAdmin"):
            registry.renounce_role(ROOT, Role.ROOT_ADMIN, ROOT)
        assert registry.has_role(ROOT, Role.ROOT_ADMIN)

    def test_root_admin_handover(self, registry):
        registry.grant_role(ROOT, Role.ROOT_ADMIN, OUTSIDER)
        registry.renounce_role(ROOT, Role.ROOT_ADMIN, ROOT)

        assert registry.members_of(Role.ROOT_ADMIN) == [OUTSIDER]
        with pytest.raises(Unauthorized):
            registry.grant_role(ROOT, Role.ADMIN, RECIPIENT)

    def test_members_in_admission_order(self, registry):
        registry.grant_role(ROOT, Role.ADMIN, OUTSIDER)
        assert registry.members_of(Role.ADMIN) == [ADMIN, OUTSIDER]


class TestIssuerLifecycle:
    """Issuer admission and the status state machine."""

    def test_add_issuer(self, registry):
        record = registry.add_issuer(ADMIN, ISSUER, "State University", "https://cert.example.edu")

        assert record.exists
        assert record.status == IssuerStatus.ACTIVE
        assert record.name == "State University"
        assert record.endpoint == "https://cert.example.edu"
        assert registry.get_issuer(ISSUER) == record
        assert registry.has_role(ISSUER, Role.ISSUER)

    def test_add_issuer_events(self, registry):
        before = len(registry.audit_events())
        registry.add_issuer(ADMIN, ISSUER, "State University", "https://cert.example.edu")

        events = registry.audit_events(before)
        assert [e.event_type for e in events] == [
            EventType.ROLE_GRANTED,
            EventType.ISSUER_ADDED,
        ]
        assert events[1].payload == {
            "identity": ISSUER,
            "name": "State University",
            "endpoint": "https://cert.example.edu",
        }
        assert all(e.actor == ADMIN for e in events)

    def test_add_issuer_requires_admin(self, registry):
        with pytest.raises(Unauthorized):
            registry.add_issuer(ROOT, ISSUER, "State University", "")
        assert not registry.get_issuer(ISSUER).exists

    def test_add_issuer_twice_rejected(self, registry_with_issuer):
        with pytest.raises(IssuerAlreadyExists):
            registry_with_issuer.add_issuer(ADMIN, ISSUER, "Other Name", "")
        assert registry_with_issuer.get_issuer(ISSUER).name == "State University"

    def test_existence_is_not_role_membership(self, registry):
        """Holding the Issuer role does not make a record; admission still works."""
        registry.grant_role(ADMIN, Role.ISSUER, ISSUER)
        assert not registry.get_issuer(ISSUER).exists

        record = registry.add_issuer(ADMIN, ISSUER, "State University", "")
        assert record.exists

    def test_add_blank_identity_rejected(self, registry):
        with pytest.raises(InvalidIdentity):
            registry.add_issuer(ADMIN, "", "Nobody", "")

    def test_unknown_issuer_is_empty_record(self, registry):
        record = registry.get_issuer("never-added")

        assert record.identity == "never-added"
        assert not record.exists
        assert record.status is None
        assert record.registered_at is None
        assert record.name == ""

    def test_update_unknown_issuer(self, registry):
        with pytest.raises(IssuerNotFound):
            registry.update_issuer_status(ADMIN, "never-added", IssuerStatus.SUSPENDED)

    def test_update_requires_admin(self, registry_with_issuer):
        with pytest.raises(Unauthorized):
            registry_with_issuer.update_issuer_status(ISSUER, ISSUER, IssuerStatus.SUSPENDED)

    def test_suspend_and_resume(self, registry_with_issuer):
        registry = registry_with_issuer
        registered_at = registry.get_issuer(ISSUER).registered_at

        suspended = registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.SUSPENDED)
        assert suspended.status == IssuerStatus.SUSPENDED
        assert registry.has_role(ISSUER, Role.ISSUER)

        resumed = registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.ACTIVE)
        assert resumed.status == IssuerStatus.ACTIVE
        assert resumed.registered_at == registered_at

        last = registry.audit_events()[-1]
        assert last.event_type == EventType.ISSUER_STATUS_UPDATED
        assert last.payload == {
            "identity": ISSUER,
            "old_status": "Suspended",
            "new_status": "Active",
        }

    @pytest.mark.parametrize("status", [IssuerStatus.ACTIVE, IssuerStatus.SUSPENDED])
    def test_redundant_transition_rejected(self, registry_with_issuer, status):
        registry = registry_with_issuer
        if status != IssuerStatus.ACTIVE:
            registry.update_issuer_status(ADMIN, ISSUER, status)
        before = len(registry.audit_events())

        with pytest.raises(StatusUnchanged):
            registry.update_issuer_status(ADMIN, ISSUER, status)

        assert len(registry.audit_events()) == before
        assert registry.get_issuer(ISSUER).status == status

    @pytest.mark.parametrize("start", [IssuerStatus.ACTIVE, IssuerStatus.SUSPENDED])
    def test_deactivation_revokes_issuer_role(self, registry_with_issuer, start):
        registry = registry_with_issuer
        if start != IssuerStatus.ACTIVE:
            registry.update_issuer_status(ADMIN, ISSUER, start)
        before = len(registry.audit_events())

        record = registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)

        assert record.status == IssuerStatus.DEACTIVATED
        assert not registry.has_role(ISSUER, Role.ISSUER)
        assert event_types(registry, before) == [
            EventType.ROLE_REVOKED,
            EventType.ISSUER_ROLE_REVOKED,
            EventType.ISSUER_STATUS_UPDATED,
        ]
        assert registry.audit_events()[-1].payload["old_status"] == start.value

    def test_deactivation_after_manual_revoke(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.revoke_role(ADMIN, Role.ISSUER, ISSUER)
        before = len(registry.audit_events())

        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)

        assert event_types(registry, before) == [EventType.ISSUER_STATUS_UPDATED]
        assert not registry.has_role(ISSUER, Role.ISSUER)

    @pytest.mark.parametrize("status", list(IssuerStatus))
    def test_deactivated_is_terminal(self, registry_with_issuer, status):
        registry = registry_with_issuer
        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)

        with pytest.raises(IssuerDeactivated):
            registry.update_issuer_status(ADMIN, ISSUER, status)

        assert registry.get_issuer(ISSUER).status == IssuerStatus.DEACTIVATED

    def test_deactivated_issuer_cannot_be_regranted(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)

        with pytest.raises(IssuerDeactivated):
            registry.grant_role(ADMIN, Role.ISSUER, ISSUER)
        with pytest.raises(IssuerAlreadyExists):
            registry.add_issuer(ADMIN, ISSUER, "State University", "")

        assert not registry.has_role(ISSUER, Role.ISSUER)

    def test_regrant_check_requires_authority_first(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)

        with pytest.raises(Unauthorized):
            registry.grant_role(OUTSIDER, Role.ISSUER, ISSUER)

    def test_manual_revoke_keeps_record_active(self, registry_with_issuer):
        """Revoking the role directly is not a status change."""
        registry = registry_with_issuer
        registry.revoke_role(ADMIN, Role.ISSUER, ISSUER)

        assert registry.get_issuer(ISSUER).status == IssuerStatus.ACTIVE
        assert not registry.has_role(ISSUER, Role.ISSUER)

    def test_list_and_counts(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.add_issuer(ADMIN, ISSUER_2, "Code Academy", "")
        registry.add_issuer(ADMIN, "issuer-3", "Night School", "")
        registry.update_issuer_status(ADMIN, ISSUER_2, IssuerStatus.SUSPENDED)
        registry.update_issuer_status(ADMIN, "issuer-3", IssuerStatus.DEACTIVATED)

        assert [r.identity for r in registry.list_issuers()] == [ISSUER, ISSUER_2, "issuer-3"]
        assert [r.identity for r in registry.list_issuers(IssuerStatus.SUSPENDED)] == [ISSUER_2]
        assert registry.issuer_counts() == {
            "total": 3,
            "active": 1,
            "suspended": 1,
            "deactivated": 1,
        }


class TestCredentials:
    """Credential issuance and identifier allocation."""

    def test_ids_are_sequential(self, registry_with_issuer):
        ids = [
            registry_with_issuer.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", f"Course {i}")
            for i in range(5)
        ]
        assert ids == [0, 1, 2, 3, 4]
        assert registry_with_issuer.total_credentials() == 5

    def test_credential_record(self, registry_with_issuer):
        registry = registry_with_issuer
        credential_id = registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")
        record = registry.get_credential(credential_id)

        assert record.credential_id == 0
        assert record.recipient == RECIPIENT
        assert record.recipient_name == "Ada Lovelace"
        assert record.issuer == ISSUER
        assert record.title == "Algorithms 101"
        assert record.issued_at.tzinfo is not None

    def test_credential_issued_event(self, registry_with_issuer):
        registry = registry_with_issuer
        credential_id = registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")

        last = registry.audit_events()[-1]
        assert last.event_type == EventType.CREDENTIAL_ISSUED
        assert last.actor == ISSUER
        assert last.payload == {
            "credential_id": credential_id,
            "issuer": ISSUER,
            "recipient": RECIPIENT,
        }
        assert last.created_at == registry.get_credential(credential_id).issued_at

    def test_two_issuers_share_the_counter(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.add_issuer(ADMIN, ISSUER_2, "Code Academy", "")

        first = registry.issue_credential(ISSUER_2, RECIPIENT, "Ada Lovelace", "Python")
        second = registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")

        assert (first, second) == (0, 1)
        assert registry.get_credential(0).issuer == ISSUER_2
        assert registry.get_credential(1).issuer == ISSUER

    def test_suspended_issuer_blocked(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.SUSPENDED)

        with pytest.raises(IssuerNotActive) as exc_info:
            registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")

        assert exc_info.value.status == "Suspended"
        assert registry.total_credentials() == 0

    def test_role_without_record_blocked(self, registry):
        registry.grant_role(ADMIN, Role.ISSUER, ISSUER)

        with pytest.raises(IssuerNotActive):
            registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")

    def test_non_issuer_unauthorized(self, registry):
        with pytest.raises(Unauthorized):
            registry.issue_credential(ADMIN, RECIPIENT, "Ada Lovelace", "Algorithms 101")

    def test_deactivated_issuer_unauthorized(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)

        with pytest.raises(Unauthorized):
            registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")

    def test_blank_recipient_consumes_no_id(self, registry_with_issuer):
        registry = registry_with_issuer

        with pytest.raises(InvalidIdentity):
            registry.issue_credential(ISSUER, "", "Nobody", "Algorithms 101")

        assert registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101") == 0

    @pytest.mark.parametrize("credential_id", [0, 1, 99])
    def test_unknown_credential(self, registry_with_issuer, credential_id):
        with pytest.raises(CredentialNotFound):
            registry_with_issuer.get_credential(credential_id)
        with pytest.raises(CredentialNotFound):
            registry_with_issuer.owner_of(credential_id)

    def test_details_join_issuer(self, registry_with_issuer):
        registry = registry_with_issuer
        credential_id = registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")
        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.SUSPENDED)

        details = registry.get_credential_details(credential_id)

        assert details.credential.title == "Algorithms 101"
        assert details.issuer.name == "State University"
        assert details.issuer.status == IssuerStatus.SUSPENDED

    def test_holdings(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")
        registry.issue_credential(ISSUER, OUTSIDER, "Grace Hopper", "Compilers")
        registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 102")

        assert registry.owner_of(1) == OUTSIDER
        assert registry.balance_of(RECIPIENT) == 2
        assert registry.credentials_of(RECIPIENT) == [0, 2]
        assert registry.balance_of("nobody") == 0
        assert registry.credentials_of("nobody") == []

    def test_issue_timestamps_from_clock(self, registry_with_issuer):
        registry = registry_with_issuer
        registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")
        registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 102")

        first = registry.get_credential(0).issued_at
        second = registry.get_credential(1).issued_at
        assert second > first
        assert first > registry.get_issuer(ISSUER).registered_at


class TestSoulbound:
    """Credentials never change owner."""

    @pytest.fixture
    def minted(self, registry_with_issuer):
        registry_with_issuer.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")
        return registry_with_issuer

    @pytest.mark.parametrize("caller", [RECIPIENT, ISSUER, ADMIN, ROOT])
    def test_transfer_forbidden_for_everyone(self, minted, caller):
        before = len(minted.audit_events())

        with pytest.raises(TransferForbidden):
            minted.transfer_credential(caller, 0, OUTSIDER)

        assert minted.owner_of(0) == RECIPIENT
        assert minted.balance_of(OUTSIDER) == 0
        assert len(minted.audit_events()) == before

    def test_transfer_of_unknown_credential_forbidden(self, minted):
        with pytest.raises(TransferForbidden):
            minted.transfer_credential(ROOT, 42, OUTSIDER)

    def test_transfer_rejection_counted(self, minted):
        with pytest.raises(TransferForbidden):
            minted.transfer_credential(RECIPIENT, 0, OUTSIDER)

        assert get_metrics().get_summary()["rejections_by_code"]["TransferForbidden"] == 1

    def test_guard_allows_one_assignment(self):
        guard = OwnershipGuard()
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)

        tx = Transaction(ISSUER, now)
        guard.assign(tx, 0, RECIPIENT, minting=True)
        tx.apply()
        assert guard.owner_of(0) == RECIPIENT

        with pytest.raises(TransferForbidden, match="already has an owner"):
            guard.assign(Transaction(ISSUER, now), 0, OUTSIDER, minting=True)
        with pytest.raises(TransferForbidden):
            guard.assign(Transaction(ROOT, now), 0, OUTSIDER)

        assert guard.owner_of(0) == RECIPIENT


class TestAtomicity:
    """A failed operation leaves no state change and no audit event."""

    def test_rejections_leave_no_events(self, registry_with_issuer):
        registry = registry_with_issuer
        before = len(registry.audit_events())

        failures = [
            (IssuerAlreadyExists, lambda: registry.add_issuer(ADMIN, ISSUER, "Again", "")),
            (IssuerNotFound, lambda: registry.update_issuer_status(ADMIN, "never-added", IssuerStatus.ACTIVE)),
            (StatusUnchanged, lambda: registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.ACTIVE)),
            (Unauthorized, lambda: registry.grant_role(OUTSIDER, Role.ADMIN, OUTSIDER)),
            (Unauthorized, lambda: registry.issue_credential(ADMIN, RECIPIENT, "Ada Lovelace", "X")),
            (TransferForbidden, lambda: registry.transfer_credential(ROOT, 0, OUTSIDER)),
        ]
        for expected, failure in failures:
            with pytest.raises(expected):
                failure()

        assert len(registry.audit_events()) == before

    def test_storage_failure_during_deactivation(self, registry_with_issuer, audit_log):
        registry = registry_with_issuer
        before = len(registry.audit_events())
        audit_log.fail_next = True

        with pytest.raises(AuditLogUnavailable):
            registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)

        assert registry.get_issuer(ISSUER).status == IssuerStatus.ACTIVE
        assert registry.has_role(ISSUER, Role.ISSUER)
        assert len(registry.audit_events()) == before

        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)
        assert not registry.has_role(ISSUER, Role.ISSUER)
        assert registry.verify_audit_log()

    def test_storage_failure_during_issuance(self, registry_with_issuer, audit_log):
        registry = registry_with_issuer
        audit_log.fail_next = True

        with pytest.raises(AuditLogUnavailable):
            registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101")

        assert registry.total_credentials() == 0
        assert registry.balance_of(RECIPIENT) == 0
        with pytest.raises(CredentialNotFound):
            registry.get_credential(0)

        assert registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101") == 0

    def test_events_of_one_operation_share_a_timestamp(self, registry_with_issuer):
        registry = registry_with_issuer
        before = len(registry.audit_events())
        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)

        events = registry.audit_events(before)
        assert len({e.created_at for e in events}) == 1
        assert [e.sequence_number for e in events] == [before, before + 1, before + 2]


class TestClock:
    """Registry timestamps never go backwards."""

    def test_backwards_source_is_clamped(self):
        base = datetime(2024, 6, 1, tzinfo=timezone.utc)
        readings = iter([base, base - timedelta(hours=1), base + timedelta(seconds=5)])
        clock = MonotonicClock(lambda: next(readings))

        assert clock.now() == base
        assert clock.now() == base
        assert clock.now() == base + timedelta(seconds=5)

    def test_naive_source_rejected(self):
        clock = MonotonicClock(lambda: datetime(2024, 6, 1))
        with pytest.raises(ValueError, match="timezone-aware"):
            clock.now()


class TestScenarios:
    """End-to-end lifecycle."""

    def test_issuer_lifecycle(self, registry):
        registry.add_issuer(ADMIN, ISSUER, "State University", "https://cert.example.edu")
        issuer = registry.get_issuer(ISSUER)
        assert issuer.status == IssuerStatus.ACTIVE
        assert issuer.registered_at is not None

        assert registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 101") == 0

        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.SUSPENDED)
        with pytest.raises(IssuerNotActive):
            registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 102")

        registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.DEACTIVATED)
        with pytest.raises(Unauthorized):
            registry.issue_credential(ISSUER, RECIPIENT, "Ada Lovelace", "Algorithms 102")
        with pytest.raises(IssuerDeactivated):
            registry.update_issuer_status(ADMIN, ISSUER, IssuerStatus.ACTIVE)

        assert registry.owner_of(0) == RECIPIENT
        assert registry.get_credential(0).title == "Algorithms 101"
        assert registry.verify_audit_log()

