"""
Demonstration: Complete Issuer and Credential Lifecycle

This example shows how an issuer is admitted, mints a credential,
is suspended, and is finally deactivated, and how the registry refuses
every step that would break its rules.

Run with: python -m examples.demo_lifecycle
"""

from certify.core import CertificateRegistry, RegistryError, Signer
from certify.schemas import IssuerStatus, Role


def _expect_rejection(label, operation, *args):
    try:
        operation(*args)
    except RegistryError as e:
        print(f"[OK] {label} rejected: {e.code}")
        print(f"   {e}")
    else:
        raise AssertionError(f"{label} should have been rejected")


def main():
    print("=" * 60)
    print("Certify - Issuer & Credential Lifecycle Demonstration")
    print("=" * 60)
    print()

    # Identities
    _, root = Signer.generate_keypair()
    _, admin = Signer.generate_keypair()
    _, issuer = Signer.generate_keypair()
    _, recipient = Signer.generate_keypair()

    registry = CertificateRegistry(root)

    print(f"Root admin: {root[:16]}...")
    print(f"Admin:      {admin[:16]}...")
    print(f"Issuer:     {issuer[:16]}...")
    print(f"Recipient:  {recipient[:16]}...")
    print()

    # ================================================================
    # STEP 1: ROOT ADMIN APPOINTS AN ADMIN
    # ================================================================
    print("=" * 60)
    print("STEP 1: ROOT ADMIN APPOINTS AN ADMIN")
    print("=" * 60)

    registry.grant_role(root, Role.ADMIN, admin)
    print(f"[OK] Admin granted: {registry.has_role(admin, Role.ADMIN)}")
    print()

    # ================================================================
    # STEP 2: ADMIN ADDS AN ISSUER
    # ================================================================
    print("=" * 60)
    print("STEP 2: ADMIN ADDS AN ISSUER")
    print("=" * 60)

    record = registry.add_issuer(admin, issuer, "State University", "https://cert.example.edu")
    print(f"[OK] Issuer added: {record.name}")
    print(f"   Status: {record.status.value}")
    print(f"   Registered: {record.registered_at.isoformat()}")
    print()

    # ================================================================
    # STEP 3: ISSUER MINTS A CREDENTIAL
    # ================================================================
    print("=" * 60)
    print("STEP 3: ISSUER MINTS A CREDENTIAL")
    print("=" * 60)

    credential_id = registry.issue_credential(issuer, recipient, "Ada Lovelace", "Algorithms 101")
    credential = registry.get_credential(credential_id)
    print(f"[OK] Credential issued: id={credential_id}")
    print(f"   Title: {credential.title}")
    print(f"   Owner: {registry.owner_of(credential_id)[:16]}...")
    print()

    _expect_rejection(
        "Transfer to another identity",
        registry.transfer_credential, recipient, credential_id, admin,
    )
    print()

    # ================================================================
    # STEP 4: ISSUER SUSPENDED
    # ================================================================
    print("=" * 60)
    print("STEP 4: ISSUER SUSPENDED")
    print("=" * 60)

    registry.update_issuer_status(admin, issuer, IssuerStatus.SUSPENDED)
    print(f"[OK] Status: {registry.get_issuer(issuer).status.value}")
    print(f"   Still holds Issuer role: {registry.has_role(issuer, Role.ISSUER)}")

    _expect_rejection(
        "Issuance while suspended",
        registry.issue_credential, issuer, recipient, "Ada Lovelace", "Algorithms 102",
    )
    print()

    # ================================================================
    # STEP 5: ISSUER DEACTIVATED
    # ================================================================
    print("=" * 60)
    print("STEP 5: ISSUER DEACTIVATED")
    print("=" * 60)

    registry.update_issuer_status(admin, issuer, IssuerStatus.DEACTIVATED)
    print(f"[OK] Status: {registry.get_issuer(issuer).status.value}")
    print(f"   Still holds Issuer role: {registry.has_role(issuer, Role.ISSUER)}")

    _expect_rejection(
        "Issuance after deactivation",
        registry.issue_credential, issuer, recipient, "Ada Lovelace", "Algorithms 102",
    )
    _expect_rejection(
        "Reactivation",
        registry.update_issuer_status, admin, issuer, IssuerStatus.ACTIVE,
    )
    _expect_rejection(
        "Re-granting the Issuer role",
        registry.grant_role, admin, Role.ISSUER, issuer,
    )
    print()

    # ================================================================
    # AUDIT TRAIL
    # ================================================================
    print("=" * 60)
    print("AUDIT TRAIL")
    print("=" * 60)

    for event in registry.audit_events():
        print(f"  #{event.sequence_number:<3} {event.event_type.value:<22} {event.event_hash[:16]}...")

    print()
    print(f"Chain valid: {registry.verify_audit_log()}")
    print(f"Credential {credential_id} still belongs to the recipient: "
          f"{registry.owner_of(credential_id) == recipient}")


if __name__ == "__main__":
    main()
