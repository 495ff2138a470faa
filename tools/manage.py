#!/usr/bin/env python3
"""
Certify Management CLI

Commands for operating the registry:
- keygen: Generate a new Ed25519 identity
- sign: Sign a JSON command for the HTTP API
- verify-audit: Verify the stored (or exported) audit chain
- export-audit: Export audit events to JSON
- health-check: Check configuration and audit log connectivity
- serve: Run the HTTP API with uvicorn

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage keygen
    python -m tools.manage sign --action add_issuer --key $KEY command.json
    python -m tools.manage verify-audit --file audit_export.json
"""

import argparse
import json
import os
import secrets
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def cmd_keygen(args):
    """Generate a new identity keypair."""
    from certify.core import Signer

    private_key, identity = Signer.generate_keypair()

    print("[OK] New identity generated")
    print("\n  Identity (public key):")
    print(f"  {identity}")
    print("\n  Private key (KEEP SECRET!):")
    print(f"  {private_key}")
    print("\n  To bootstrap a registry with this identity as RootAdmin:")
    print(f"  CERTIFY_ROOT_ADMIN={identity}")


def cmd_sign(args):
    """Sign a JSON command file and print the signed request body."""
    from certify.core import Signer

    private_key = args.key or os.environ.get("CERTIFY_PRIVATE_KEY", "")
    if not private_key:
        print("Error: pass --key or set CERTIFY_PRIVATE_KEY", file=sys.stderr)
        return 1

    with open(args.command_file) as f:
        command = json.load(f)

    command.pop("signature", None)
    command.setdefault("caller", Signer.identity_of(private_key))
    command.setdefault("nonce", secrets.token_hex(16))

    if command["caller"] != Signer.identity_of(private_key):
        print("Error: 'caller' does not match the signing key", file=sys.stderr)
        return 1

    message = dict(command, action=args.action)
    command["signature"] = Signer.sign_command(message, private_key)

    print(json.dumps(command, indent=2))


def _load_events(args):
    from certify.schemas import AuditEvent
    from certify.shared import create_audit_log

    if args.file:
        with open(args.file) as f:
            return [AuditEvent.model_validate(item) for item in json.load(f)]
    return create_audit_log().list_all()


def cmd_verify_audit(args):
    """Verify the integrity of the audit hash chain."""
    from certify.db.store import AuditLog, ChainIntegrityError

    print("Loading audit events...")
    events = _load_events(args)
    print(f"Audit log loaded: {len(events)} events")

    try:
        AuditLog.verify_chain(events)
    except ChainIntegrityError as e:
        print(f"[FAIL] Audit chain verification FAILED: {e}")
        return 1

    print("[OK] Audit chain integrity verified OK")
    if events:
        print(f"  Chain head: {events[-1].event_hash[:16]}...")
    return 0


def cmd_export_audit(args):
    """Export all audit events to a JSON file."""
    from certify.shared import create_audit_log

    print("Loading events...")
    events = create_audit_log().list_all()
    print(f"Found {len(events)} events")

    export_data = [event.model_dump(mode="json") for event in events]

    output_file = args.output or "audit_export.json"
    with open(output_file, "w") as f:
        json.dump(export_data, f, indent=2)

    print(f"[OK] Exported {len(events)} events to {output_file}")


def cmd_health_check(args):
    """Run configuration and connectivity checks."""
    from certify.db.config import (
        AuditLogDriver,
        DatabaseConfig,
        get_auditlog_driver,
        get_database_url,
        get_root_admin,
    )
    from certify.db.store import AuditLogError
    from certify.shared import create_audit_log

    db_url = get_database_url()
    driver = get_auditlog_driver()

    print("=== Certify Health Check ===\n")

    print("Audit log:")
    if driver != AuditLogDriver.MEMORY and db_url:
        config = DatabaseConfig.from_url(db_url) if "://" in db_url else DatabaseConfig.from_env()
        print(f"  Type: PostgreSQL ({driver.value})")
        print(f"  Host: {config.host}:{config.port}")
    else:
        print("  Type: In-Memory")

    try:
        log = create_audit_log()
        head = log.get_head()
    except AuditLogError as e:
        print(f"  Status: [FAIL] {e}")
        return 1
    print("  Status: [OK] Connected")
    print(f"  Events: {head.next_sequence}")
    print(f"  Last hash: {head.last_event_hash[:16] + '...' if head.last_event_hash else 'None'}")

    if not head.is_empty:
        if log.verify_integrity():
            print("  Chain integrity: [OK] Valid")
        else:
            print("  Chain integrity: [FAIL] INVALID!")
            return 1

    print("\nEnvironment:")
    if get_root_admin():
        print("  Root admin: [OK] Set")
    else:
        print("  Root admin: [FAIL] CERTIFY_ROOT_ADMIN not set")
        return 1

    print("\n=== Health Check Complete ===")
    return 0


def cmd_serve(args):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "certify.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


def main():
    parser = argparse.ArgumentParser(
        description="Certify Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # keygen
    subparsers.add_parser(
        "keygen",
        help="Generate a new Ed25519 identity"
    )

    # sign
    p_sign = subparsers.add_parser(
        "sign",
        help="Sign a JSON command for the HTTP API"
    )
    p_sign.add_argument("command_file", help="JSON file with the command fields")
    p_sign.add_argument(
        "--action",
        required=True,
        choices=[
            "grant_role", "revoke_role", "renounce_role",
            "add_issuer", "update_issuer_status",
            "issue_credential", "transfer_credential",
        ],
        help="Command being signed",
    )
    p_sign.add_argument("--key", help="Private key (default: $CERTIFY_PRIVATE_KEY)")

    # verify-audit
    p_verify = subparsers.add_parser(
        "verify-audit",
        help="Verify audit chain integrity"
    )
    p_verify.add_argument("--file", "-f", help="Verify an exported JSON file instead of the configured log")

    # export-audit
    p_export = subparsers.add_parser(
        "export-audit",
        help="Export all audit events to JSON"
    )
    p_export.add_argument("--output", "-o", help="Output file (default: audit_export.json)")

    # health-check
    subparsers.add_parser(
        "health-check",
        help="Run configuration and connectivity checks"
    )

    # serve
    p_serve = subparsers.add_parser(
        "serve",
        help="Run the HTTP API (needs CERTIFY_ROOT_ADMIN)"
    )
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "keygen": cmd_keygen,
        "sign": cmd_sign,
        "verify-audit": cmd_verify_audit,
        "export-audit": cmd_export_audit,
        "health-check": cmd_health_check,
        "serve": cmd_serve,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
