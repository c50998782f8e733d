"""Command-line interface: enable, disable, and inspect account logins."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Annotated, Iterator, NoReturn, Optional

import typer
from psycopg_pool import ConnectionPool
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import get_settings
from .domain.contracts import AccountFilter, BulkAction, BulkActionInput
from .domain.errors import CallerInputError
from .domain.resolver import select_matching_accounts, split_identifiers, verify_account_ids
from .wiring import Services, build_services

console = Console()

app = typer.Typer(
    help="Enable or disable the ability of user accounts to log in.",
    no_args_is_help=True,
)

TokensArg = Annotated[
    Optional[list[str]],
    typer.Argument(help="User ids, logins or emails", show_default=False),
]
AllOpt = Annotated[bool, typer.Option("--all", help="Select every non-administrator account")]
StrictOpt = Annotated[
    bool,
    typer.Option("--strict-ids", help="Require every identifier to be a positive integer id"),
]


@contextmanager
def open_services() -> Iterator[Services]:
    """Open a connection pool for the duration of one command."""
    settings = get_settings()
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    try:
        yield build_services(pool, settings)
    finally:
        pool.close()


@app.callback()
def main() -> None:
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {escape(message)}[/red]")
    raise typer.Exit(1)


def _run(action: BulkAction, tokens: list[str] | None, select_all: bool, strict_ids: bool) -> None:
    tokens = tokens or []
    if not tokens and not select_all:
        _fail("Please specify one or more users, or use --all")
    if strict_ids and not select_all:
        try:
            verify_account_ids(tokens)
        except CallerInputError as exc:
            _fail(str(exc))

    # --all takes precedence over explicit identifiers
    payload = BulkActionInput(
        action=action,
        identifiers=[] if select_all else tokens,
        select_all=select_all,
    )
    try:
        with open_services() as services:
            result = services.accounts.apply_bulk_action(payload, actor="cli")
    except CallerInputError as exc:
        _fail(str(exc))

    verb = "Enable" if action is BulkAction.ENABLE else "Disable"
    console.print(f"[green]Success: {verb} {result.count} user(s)[/green]")


@app.command("enable")
def enable_users(
    tokens: TokensArg = None,
    select_all: AllOpt = False,
    strict_ids: StrictOpt = False,
) -> None:
    """Enable users by id, login or email; --all enables every disabled non-administrator."""
    _run(BulkAction.ENABLE, tokens, select_all, strict_ids)


@app.command("disable")
def disable_users(
    tokens: TokensArg = None,
    select_all: AllOpt = False,
    strict_ids: StrictOpt = False,
) -> None:
    """Disable users by id, login or email; --all disables every enabled non-administrator."""
    _run(BulkAction.DISABLE, tokens, select_all, strict_ids)


@app.command("status")
def show_status(tokens: TokensArg = None) -> None:
    """Show whether the given users may log in."""
    if not tokens:
        _fail("Please specify one or more users")

    with open_services() as services:
        candidates = services.repository.query_accounts(AccountFilter())
        numeric_ids, logins_emails = split_identifiers(tokens)
        matched = set(select_matching_accounts(candidates, numeric_ids, logins_emails))

        table = Table(title="Account login state")
        table.add_column("ID", style="cyan")
        table.add_column("Login")
        table.add_column("Email")
        table.add_column("State")
        for account in candidates:
            if account.account_id not in matched:
                continue
            if services.state.is_disabled(account.account_id):
                state = "[red]Disabled[/red]"
            elif account.is_administrator:
                state = "[yellow]Enabled (administrator)[/yellow]"
            else:
                state = "[green]Enabled[/green]"
            table.add_row(account.account_id, escape(account.login), escape(account.email), state)

    if not matched:
        console.print("[yellow]No matching users[/yellow]")
        return
    console.print(table)


if __name__ == "__main__":
    app()
