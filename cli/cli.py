# cli/cli.py
"""
Command line entry point for running classification and reconciliation imports.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Callable, Dict, Optional

from api.core.config import settings
from api.core.exceptions import BaseAPIException
from api.core.logging import configure_structlog
from api.db.session import engine, get_session_factory, init_models
from api.services.audit_log import SqlAuditLogStore
from api.services.fan_out import FanOutOrchestrator
from api.services.outcome import explain
from api.services.reconciliation import ReconciliationImporter
from api.services.registry import build_registry
from api.services.vapi import CallSourceError


# Output formatting utilities
def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    print(f"{RED}[✗]{RESET} {message}")


def print_warning(message: str):
    print(f"{YELLOW}[!]{RESET} {message}")


def print_info(message: str):
    print(f"{BLUE}[i]{RESET} {message}")


async def _open_store() -> SqlAuditLogStore:
    if settings.database_auto_create:
        await init_models()
    return SqlAuditLogStore(get_session_factory())


async def _build_importer() -> ReconciliationImporter:
    store = await _open_store()
    registry = build_registry(settings)
    orchestrator = FanOutOrchestrator(store, registry.notifier, registry.crm, registry.conversion)
    return ReconciliationImporter(
        store,
        orchestrator,
        registry.call_source,
        registry.lead_source,
        registry.crm,
        default_page_id=settings.facebook_page_id,
    )


# Command functions
async def cmd_classify(args: argparse.Namespace) -> int:
    """Command: classify one call offline."""
    result = explain(args.ended_reason, args.transcript, args.summary, args.duration)
    print_success(f"Outcome: {result.outcome.value}")
    print_info(f"  Rule: {result.rule}")
    return 0


async def cmd_import_calls(args: argparse.Namespace) -> int:
    """Command: replay recent calls through the CRM and conversion sinks."""
    hours = args.hours or settings.import_default_hours
    print_info(f"Importing calls from the last {hours} hours...")
    try:
        importer = await _build_importer()
        result = await importer.import_calls(hours)
    except CallSourceError as e:
        print_error(f"Call source failed ({e.code}): {e.message}")
        return 1
    finally:
        await engine.dispose()

    print_info(f"  Found {result.total} ended calls")
    for call in result.calls:
        crm = "updated" if call["attio_updated"] else "not updated"
        print_info(f"  {call['call_id']}: {call['outcome']} (CRM {crm})")
    for error in result.errors:
        print_error(f"  {error}")

    if result.errors:
        print_warning(f"Processed {result.processed}/{result.total} calls with {len(result.errors)} errors")
        return 1
    print_success(f"Processed {result.processed} calls, {result.attio_updated} CRM records updated")
    return 0


async def cmd_import_leads(args: argparse.Namespace) -> int:
    """Command: create CRM records for lead-ad leads."""
    try:
        importer = await _build_importer()
        result = await importer.import_leads(args.page_id)
    except BaseAPIException as e:
        print_error(e.message)
        return 1
    finally:
        await engine.dispose()

    for error in result.errors:
        print_error(f"  {error}")

    if result.errors:
        print_warning(f"Created {result.created}, skipped {result.skipped}, {len(result.errors)} errors")
        return 1
    print_success(f"Created {result.created} of {result.total} leads, {result.skipped} already in CRM")
    return 0


async def cmd_stats(args: argparse.Namespace) -> int:
    """Command: summarize the activity log."""
    try:
        store = await _open_store()
        stats = await store.activity_stats()
    finally:
        await engine.dispose()

    print_info(f"Activities: {stats.total} ({stats.successful} successful, {stats.failed} failed)")
    for service, counts in sorted(stats.by_service.items()):
        line = f"  {service}: {counts['total']} total, {counts['failed']} failed"
        if counts["failed"]:
            print_warning(line)
        else:
            print_success(line)
    for activity_type, count in sorted(stats.by_type.items()):
        print_info(f"  {activity_type}: {count}")
    return 0


# Command registry
COMMANDS: Dict[str, Callable] = {
    'classify': cmd_classify,
    'import-calls': cmd_import_calls,
    'import-leads': cmd_import_leads,
    'stats': cmd_stats,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog='call-relay',
        description='Call outcome relay CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    classify_parser = subparsers.add_parser('classify', help='Classify one call without side effects')
    classify_parser.add_argument('--ended-reason', default='', help='Provider end reason code')
    classify_parser.add_argument('--transcript', default='', help='Call transcript')
    classify_parser.add_argument('--summary', default='', help='Call summary')
    classify_parser.add_argument('--duration', type=int, default=0, help='Duration in seconds')

    calls_parser = subparsers.add_parser('import-calls', help='Import recent calls from the call source')
    calls_parser.add_argument('--hours', type=int, default=None, help='Look-back window in hours')

    leads_parser = subparsers.add_parser('import-leads', help='Import lead-ad leads into the CRM')
    leads_parser.add_argument('--page-id', default=None, help='Page id (defaults to FACEBOOK_PAGE_ID)')

    subparsers.add_parser('stats', help='Show activity log statistics')

    return parser


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    configure_structlog()
    try:
        return asyncio.run(command_func(parsed_args))
    except KeyboardInterrupt:
        print_error("\nInterrupted by user")
        return 130
    except Exception as e:
        print_error(f"Error executing command: {str(e)}")
        if os.getenv('DEBUG'):
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
