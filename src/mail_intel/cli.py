"""Command-line entry point for mail-intel."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

from mail_intel.core import AppSettings, configure_logging, load_app_settings
from mail_intel.core.container import ServiceContainer
from mail_intel.core.models import EmailAccount, EmailProvider, SyncResult
from mail_intel.wiring import (
    ACCOUNTS,
    FORECAST,
    ORCHESTRATOR,
    STORE,
    build_container,
)


def _parse_date(value: str) -> datetime:
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', use YYYY-MM-DD") from exc
    return parsed.replace(tzinfo=UTC)


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Email sync, triage and forecasts")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    subcommands = parser.add_subparsers(dest="command")
    subcommands.add_parser("info", help="Show the active configuration.")

    accounts = subcommands.add_parser("accounts", help="List or link accounts.")
    accounts.add_argument("--add", metavar="EMAIL", help="Link a new mailbox.")
    accounts.add_argument(
        "--provider",
        choices=[provider.value for provider in EmailProvider],
        default=EmailProvider.IMAP.value,
        help="Provider for --add (default: IMAP).",
    )
    accounts.add_argument("--user-id", default="default", help="Owner for --add.")
    accounts.add_argument("--imap-host", default=None, help="IMAP host for --add.")

    sync = subcommands.add_parser("sync", help="Sync one account or all due ones.")
    sync.add_argument("--account", default=None, help="Account id to sync.")
    sync.add_argument(
        "--since",
        type=_parse_date,
        default=None,
        help="Start date (YYYY-MM-DD); defaults to the configured history window.",
    )

    forecast = subcommands.add_parser("forecast", help="Forecast a metric.")
    forecast.add_argument("metric", help="Metric name.")
    forecast.add_argument(
        "--days", type=int, default=7, help="Forecast horizon in days (default: 7)."
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command or "info"
    if command == "info":
        print("mail-intel is ready.")
        print(f"Database path: {settings.storage.db_path}")
        print(f"AI backend: {settings.llm.provider}")
        print(f"Folders: {', '.join(settings.sync.folders)}")
        return 0

    container = build_container(settings)
    try:
        if command == "accounts":
            return asyncio.run(_run_accounts(container, args))
        if command == "sync":
            return asyncio.run(_run_sync(container, args.account, args.since))
        if command == "forecast":
            return asyncio.run(_run_forecast(container, args.metric, args.days))
    finally:
        store = container.try_resolve(STORE)
        if store is not None:
            store.close()
    return 2


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    return execute(args, settings)


async def _run_accounts(container: ServiceContainer, args: argparse.Namespace) -> int:
    registry = container.resolve(ACCOUNTS)
    if args.add:
        account = EmailAccount(
            id=uuid4().hex,
            email_address=args.add,
            provider=EmailProvider(args.provider),
            user_id=args.user_id,
            imap_host=args.imap_host,
        )
        await registry.add(account)
        print(f"Linked {account.email_address} as {account.id}")
        return 0

    accounts = await registry.list_accounts()
    if not accounts:
        print("No accounts linked.")
        return 0
    for account in accounts:
        last = account.last_synced_at.isoformat() if account.last_synced_at else "never"
        active = "active" if account.is_active else "inactive"
        print(
            f"{account.id}  {account.email_address:<32} {account.provider:<8} "
            f"{account.status:<10} {active:<8} last={last} "
            f"emails={account.total_emails_synced}"
        )
        if account.last_sync_error:
            print(f"    last error: {account.last_sync_error}")
    return 0


async def _run_sync(
    container: ServiceContainer, account_id: str | None, since: datetime | None
) -> int:
    orchestrator = container.resolve(ORCHESTRATOR)
    if account_id:
        results = [await orchestrator.sync_account(account_id, since)]
    else:
        results = await orchestrator.sync_all_accounts()
        if not results:
            print("No accounts need syncing.")
            return 0
    for result in results:
        print(_format_result(result))
    return 0 if all(result.success for result in results) else 1


def _format_result(result: SyncResult) -> str:
    if not result.success:
        return f"{result.account_id}: sync failed: {result.error_message}"
    folders = ", ".join(
        f"{item.folder}={item.emails_processed}" for item in result.folders
    )
    return (
        f"{result.account_id}: {result.emails_processed} email(s), "
        f"{result.attachments_processed} attachment(s) [{folders}]"
    )


async def _run_forecast(container: ServiceContainer, metric: str, days: int) -> int:
    engine = container.resolve(FORECAST)
    try:
        points = await engine.forecast(metric, days)
    except ValueError as exc:
        print(f"Forecast failed: {exc}")
        return 1
    if not points:
        print(f"No forecast available for '{metric}'.")
        return 0
    print(f"{'date':<12}{'value':>12}{'lower':>12}{'upper':>12}")
    for point in points:
        print(
            f"{point.date:%Y-%m-%d}  {point.value:>10.2f}"
            f"{point.lower_bound:>12.2f}{point.upper_bound:>12.2f}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
