"""CLI for Renewals: browse tracked renewals and run the local API."""

from __future__ import annotations

import asyncio
import locale
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import date
from pathlib import Path
from typing import Any, TypeVar

import click

from renewals import __version__
from renewals.client import RenewalClient
from renewals.collection import SORT_KEYS, calculate_stats, filter_renewals, sort_renewals
from renewals.config import ConfigError, RenewalsConfig, load_config
from renewals.core.logging import configure_logging
from renewals.dates import days_remaining, format_display
from renewals.models import (
    ApiResult,
    DateRange,
    RenewalFilters,
    RenewalKind,
    RenewalRecord,
    RenewalStatus,
)
from renewals.status import refresh_statuses

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _make_client(config: RenewalsConfig) -> RenewalClient:
    return RenewalClient.from_config(config)


def _run(config: RenewalsConfig, call: Callable[[RenewalClient], Awaitable[T]]) -> T:
    async def _main() -> T:
        async with _make_client(config) as client:
            return await call(client)

    return asyncio.run(_main())


def _fail(result: ApiResult[Any]) -> None:
    click.echo(result.message or "Request failed", err=True)
    sys.exit(1)


def _format_cost(cost: float | None) -> str:
    return f"{cost:.2f}" if cost is not None else "-"


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to renewals.toml or a directory containing it",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Renewals: track subscriptions, licenses, hosting plans and domains."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    log_file = Path(config.logging.log_file) if config.logging.log_file else None
    configure_logging(config.logging.level, config.logging.format, log_file)
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as exc:
        logger.debug("Keeping default collation: %s", exc)
    ctx.obj = config


@cli.command("list")
@click.option("--mine", is_flag=True, help="Only renewals owned by the signed-in user")
@click.option(
    "--kind",
    type=click.Choice(["all", *(k.value for k in RenewalKind)]),
    default="all",
    help="Filter by category",
)
@click.option(
    "--status",
    type=click.Choice(["all", *(s.value for s in RenewalStatus)]),
    default="all",
    help="Filter by status",
)
@click.option("--provider", default=None, help="Provider substring (case-insensitive)")
@click.option("--search", default=None, help="Match name or provider (case-insensitive)")
@click.option(
    "--ends-after",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Earliest end date (inclusive)",
)
@click.option(
    "--ends-before",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Latest end date (inclusive)",
)
@click.option("--sort", "sort_key", type=click.Choice(SORT_KEYS), default="end_date")
@click.option("--desc", is_flag=True, help="Sort descending")
@click.pass_obj
def list_cmd(
    config: RenewalsConfig,
    mine: bool,
    kind: str,
    status: str,
    provider: str | None,
    search: str | None,
    ends_after: Any,
    ends_before: Any,
    sort_key: str,
    desc: bool,
) -> None:
    """List renewals, filtered and sorted."""
    result = _run(
        config,
        lambda client: client.list_user_renewals() if mine else client.list_renewals(),
    )
    if not result.success:
        _fail(result)

    date_range = None
    if ends_after is not None or ends_before is not None:
        date_range = DateRange(
            start=ends_after.date() if ends_after else None,
            end=ends_before.date() if ends_before else None,
        )
    filters = RenewalFilters(
        kind=kind, status=status, provider=provider, search=search, date_range=date_range
    )
    records = sort_renewals(
        filter_renewals(result.data, filters),
        sort_key,  # type: ignore[arg-type]
        "desc" if desc else "asc",
    )
    if not records:
        click.echo("No renewals found.")
        return

    today = date.today()
    click.echo(
        f"{'ID':<6} {'Name':<24} {'Provider':<16} {'Ends':<14} {'Days':>5} "
        f"{'Status':<14} {'Cost':>9}"
    )
    click.echo("-" * 94)
    for record in records:
        status_label = record.status.value if record.status else "-"
        click.echo(
            f"{record.id or '-':<6} {record.name or '-':<24} {record.provider or '-':<16} "
            f"{format_display(record.end_date):<14} {days_remaining(record.end_date, today):>5} "
            f"{status_label:<14} {_format_cost(record.cost):>9}"
        )


def _show_record(record: RenewalRecord) -> None:
    rows = [
        ("ID", record.id),
        ("Name", record.name),
        ("Category", record.kind.value if record.kind else None),
        ("Provider", record.provider),
        ("Start", format_display(record.start_date)),
        ("End", format_display(record.end_date)),
        ("Days left", days_remaining(record.end_date)),
        ("Cost", _format_cost(record.cost)),
        ("Status", record.status.value if record.status else None),
        ("Reminder", record.reminder_type.value if record.reminder_type else None),
        ("Remind days", record.reminder_days_before),
        ("Notes", record.notes),
    ]
    for label, value in rows:
        if value is not None:
            click.echo(f"{label + ':':<13} {value}")


@cli.command()
@click.argument("renewal_id")
@click.option("--logs", "with_logs", is_flag=True, help="Also print the audit log")
@click.pass_obj
def show(config: RenewalsConfig, renewal_id: str, with_logs: bool) -> None:
    """Show one renewal."""

    async def _fetch(client: RenewalClient) -> tuple[ApiResult, ApiResult | None]:
        record = await client.get_renewal(renewal_id)
        logs = await client.list_logs(renewal_id) if with_logs and record.success else None
        return record, logs

    result, logs = _run(config, _fetch)
    if not result.success or result.data is None:
        _fail(result)
    _show_record(result.data)

    if logs is not None:
        click.echo("")
        if not logs.success:
            click.echo(logs.message or "Could not load the audit log", err=True)
        elif not logs.data:
            click.echo("No log entries.")
        for entry in logs.data:
            click.echo(f"{entry.timestamp}  {entry.action.value:<15} {entry.performed_by}")


@cli.command()
@click.pass_obj
def stats(config: RenewalsConfig) -> None:
    """Show status counts and total cost."""

    async def _fetch(client: RenewalClient) -> tuple[ApiResult, bool]:
        result = await client.get_statistics()
        if result.success:
            return result, False
        listing = await client.list_renewals()
        if not listing.success:
            return result, False
        logger.info("Statistics endpoint failed; computing locally")
        records = refresh_statuses(listing.data, window_days=config.expiring_soon_days)
        return result.model_copy(update={"data": calculate_stats(records)}), True

    result, computed_locally = _run(config, _fetch)
    if not result.success and not computed_locally:
        _fail(result)
    if computed_locally:
        click.echo("Statistics computed locally.", err=True)

    data = result.data
    click.echo(f"Active:        {data.active}")
    click.echo(f"Expiring soon: {data.expiring_soon}")
    click.echo(f"Expired:       {data.expired}")
    click.echo(f"Total:         {data.total}")
    click.echo(f"Total cost:    {data.total_cost:.2f}")


@cli.command()
@click.option("--host", default=DEFAULT_HOST, help="Bind address")
@click.option("--port", type=int, default=DEFAULT_PORT, help="Bind port")
@click.option("--empty", is_flag=True, help="Start without the sample renewals")
def serve(host: str, port: int, empty: bool) -> None:
    """Run the local stand-in renewals API."""
    import uvicorn

    from renewals.api import create_app
    from renewals.store import RenewalStore

    app = create_app(RenewalStore() if empty else None)
    click.echo(f"Renewals API listening on http://{host}:{port}/api")
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    cli()
