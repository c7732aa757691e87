#!/usr/bin/env python3
"""Device Sync CLI for the school district's device-management estate.

This module provides a command-line interface for reconciling device and
group state across the helpdesk asset-tracking system, Entra ID, Intune
and Active Directory. Each subcommand replaces one of the standalone
scheduled scripts.

Architecture:
    - GraphClient is the shared HTTP layer for Entra ID and Intune
    - TokenManager handles the OAuth2 client credentials flow
    - HelpdeskClient talks to the helpdesk inventory REST API
    - Use cases in src.devsync.sync do the work; this file only wires and prints

Environment Variables Required:
    - AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET: App registration
    - HELPDESK_BASE_URL, HELPDESK_API_TOKEN: Helpdesk API (most commands)
    - LDAP_SERVER, LDAP_USER, LDAP_PASSWORD, LDAP_SEARCH_BASE: reconcile-computers
    - DEVSYNC_CONFIG_FILE: Run configuration (default: devsync.json)

Example Usage:
    $ python main.py sync-groups                       # Reconcile every configured group
    $ python main.py sync-groups --group Lab-HS-101    # Just one group
    $ python main.py remove-primary-users              # Clear primary users on shared devices
    $ python main.py remove-duplicates                 # Delete stale duplicate records
    $ python main.py remove-retired                    # Delete Autopilot records of retired assets
    $ python main.py reconcile-computers               # Clean up / rename AD computer objects
    $ python main.py app-assignments "All Students"    # List apps assigned to a group

Exit status is 0 when everything succeeded and 1 on a fatal error or when
any target or device failed.
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.devsync import commands
from src.devsync.api import ConfigurationError, DevSyncError, TokenManager
from src.devsync.config import SyncConfig, load_config
from src.devsync.sync.adapters import LoggingEventLog
from src.devsync.sync.domain.entities import (
    AppAssignment,
    BatchResult,
    EventCode,
    ReconcileResult,
    Severity,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


# ============================================
# Output
# ============================================

def print_group_results(results: list[ReconcileResult]) -> None:
    """Print a per-group summary table."""
    print(f"\n{'Group':<32} {'Desired':>7} {'Actual':>7} {'Added':>6} {'Removed':>8} {'Missing':>8} {'Failed':>7}")
    print("-" * 80)
    for r in results:
        if r.skipped:
            print(f"{r.group_name[:31]:<32} SKIPPED: {r.skipped_reason}")
            continue
        print(
            f"{r.group_name[:31]:<32} {r.desired_count:>7} {r.actual_count:>7} "
            f"{r.added:>6} {r.removed:>8} {len(r.unresolved):>8} {len(r.failures):>7}"
        )

    missing = sorted({name for r in results for name in r.unresolved})
    if missing:
        print(f"\n⚠️  {len(missing)} device(s) not found in the directory: {', '.join(missing[:20])}")


def print_batch_result(result: BatchResult) -> None:
    print(f"\n[Main] {result.operation}: examined {result.examined}, "
          f"applied {result.applied}, deferred {result.deferred}, failed {len(result.failures)}")
    for failure in result.failures:
        print(f"  ✗ {failure.subject}: {failure.outcome.value}: {failure.message}")


def print_app_assignments(group_name: str, assignments: list[AppAssignment]) -> None:
    if not assignments:
        print(f"✓ No apps are assigned to {group_name}")
        return

    print(f"\n{len(assignments)} app assignment(s) for {group_name}:\n")
    print(f"{'App':<50} {'Intent':<14} {'Mode':<8}")
    print("-" * 74)
    for a in assignments:
        mode = "exclude" if a.excluded else "include"
        print(f"{a.app_name[:49]:<50} {a.intent:<14} {mode:<8}")


# ============================================
# Command Dispatch
# ============================================

async def run_command(args: argparse.Namespace) -> int:
    """Run one subcommand and return the process exit status."""
    start_time = datetime.now(timezone.utc)
    print(f"[Main] Starting {args.command} at {start_time.isoformat()}")

    config: SyncConfig | None = None
    event_log = LoggingEventLog(os.getenv("AUDIT_LOG_FILE") or None)

    try:
        if args.command != "app-assignments":
            config = load_config(args.config)
            event_log = LoggingEventLog(config.audit_log_file)

        token_manager = TokenManager()

        if args.command == "sync-groups":
            results = await commands.sync_groups(config, token_manager, event_log, args.group)
            if args.json:
                print(json.dumps([r.to_dict() for r in results], indent=2))
            else:
                print_group_results(results)
            ok = all(r.success for r in results)

        elif args.command == "app-assignments":
            assignments = await commands.app_assignments(token_manager, args.group_name)
            if args.json:
                print(json.dumps([vars(a) for a in assignments], indent=2))
            else:
                print_app_assignments(args.group_name, assignments)
            ok = True

        else:
            if args.command == "remove-primary-users":
                result = await commands.remove_primary_users(config, token_manager, event_log)
            elif args.command == "remove-duplicates":
                result = await commands.remove_duplicates(token_manager, event_log)
            elif args.command == "remove-retired":
                result = await commands.remove_retired(config, token_manager, event_log)
            else:
                result = await commands.reconcile_computers(config, token_manager, event_log)

            if args.json:
                print(json.dumps(result.to_dict(), indent=2))
            else:
                print_batch_result(result)
            ok = result.success

    except ConfigurationError as e:
        print(f"[Main] Configuration error: {e}")
        return EXIT_FAILURE

    except DevSyncError as e:
        logger.error(f"{args.command} aborted: {e}")
        event_log.write(EventCode.FATAL, Severity.ERROR, f"{args.command} aborted: {e.message}")
        if args.json:
            print(json.dumps(e.to_dict(), indent=2))
        else:
            print(f"[Main] Fatal error: {e}")
        return EXIT_FAILURE

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    print(f"\n[Main] Completed in {duration:.1f} seconds")
    return EXIT_OK if ok else EXIT_FAILURE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reconcile devices and groups across the helpdesk, Entra ID, Intune and AD",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py sync-groups                      # Reconcile every configured group
  python main.py sync-groups --group Lab-HS-101   # Reconcile one group
  python main.py remove-duplicates --json         # Machine-readable summary
  python main.py app-assignments "All Students"   # List apps assigned to a group
        """
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Run configuration file (default: $DEVSYNC_CONFIG_FILE or devsync.json)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync-groups",
        help="Reconcile lab-room, building, unassigned and completed groups"
    )
    sync_parser.add_argument(
        "--group",
        action="append",
        metavar="NAME",
        help="Only reconcile this group (repeatable)"
    )

    subparsers.add_parser(
        "remove-primary-users",
        help="Remove the primary user from shared Windows devices"
    )
    subparsers.add_parser(
        "remove-duplicates",
        help="Delete older Intune records that share a serial number"
    )
    subparsers.add_parser(
        "remove-retired",
        help="Delete Autopilot identities of devices retired in the helpdesk"
    )
    subparsers.add_parser(
        "reconcile-computers",
        help="Delete stale AD computer objects and rename misnamed devices"
    )

    apps_parser = subparsers.add_parser(
        "app-assignments",
        help="List the Intune apps assigned to a group"
    )
    apps_parser.add_argument("group_name", help="Display name of the group")

    return parser


def main() -> int:
    args = build_parser().parse_args()
    configure_logging(args.verbose)
    return asyncio.run(run_command(args))


if __name__ == "__main__":
    sys.exit(main())
