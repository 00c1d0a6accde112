"""Token balance commands.

Accounts created while balance provisioning was disabled or degraded start
without credits; these commands let an operator inspect and correct them.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from src.idbridge.core.services.database.db_session import DbSessionService
from src.idbridge.core.storage.account_store import (
    BalanceStore,
    SqlBalanceStore,
    SqlUserStore,
    UserStore,
)
from src.idbridge.entities.balance import Balance
from src.idbridge.entities.user import User

T = TypeVar("T")

console = Console()

balance_app = typer.Typer(help="Inspect and correct user token balances")


def get_db_service() -> DbSessionService:
    """Database service built from the active configuration."""
    return DbSessionService()


async def find_user(users: UserStore, user_ref: str) -> User | None:
    """Look a user up by email address or by ID."""
    user_ref = user_ref.strip()
    if "@" in user_ref:
        return await users.find_by_email(user_ref)
    return await users.get(user_ref)


def _run(action: Callable[[UserStore, BalanceStore], Awaitable[T]]) -> T:
    db = get_db_service()
    try:
        return asyncio.run(action(SqlUserStore(db), SqlBalanceStore(db)))
    except SQLAlchemyError as e:
        console.print(f"[red]❌ Database error: {e}[/red]")
        raise typer.Exit(code=1) from e


async def _require_user(users: UserStore, user_ref: str) -> User:
    user = await find_user(users, user_ref)
    if user is None:
        console.print(f"[red]❌ User '{user_ref}' not found[/red]")
        raise typer.Exit(code=1)
    return user


def _print_balance(user: User, balance: Balance | None) -> None:
    table = Table(title="Token balance")
    table.add_column("User ID", style="cyan")
    table.add_column("Email", style="blue")
    table.add_column("Credits", style="green", justify="right")
    table.add_row(
        user.id, user.email, str(balance.token_credits) if balance else "none"
    )
    console.print(table)


@balance_app.command("show")
def show_balance(
    user_ref: str = typer.Argument(..., metavar="USER", help="User ID or email address"),
) -> None:
    """Show the balance of a user."""

    async def action(users: UserStore, balances: BalanceStore):
        user = await _require_user(users, user_ref)
        return user, await balances.get(user.id)

    user, balance = _run(action)
    _print_balance(user, balance)


@balance_app.command("set")
def set_balance(
    user_ref: str = typer.Argument(..., metavar="USER", help="User ID or email address"),
    amount: int = typer.Option(..., "--amount", "-a", min=0, help="New credit balance"),
) -> None:
    """Set a user's balance, creating it when the user has none."""

    async def action(users: UserStore, balances: BalanceStore):
        user = await _require_user(users, user_ref)
        return user, await balances.set_credits(user.id, amount)

    user, balance = _run(action)
    console.print(f"[green]✅ Balance of {user.email} set to {balance.token_credits}[/green]")
    _print_balance(user, balance)


@balance_app.command("add")
def add_balance(
    user_ref: str = typer.Argument(..., metavar="USER", help="User ID or email address"),
    amount: int = typer.Option(
        ..., "--amount", "-a", help="Credits to add; negative values deduct"
    ),
) -> None:
    """Top up a user's balance."""

    async def action(users: UserStore, balances: BalanceStore):
        user = await _require_user(users, user_ref)
        current = await balances.get(user.id)
        if current is not None and current.token_credits + amount < 0:
            console.print(
                f"[red]❌ Balance of {user.email} would drop below zero "
                f"({current.token_credits} {amount:+d})[/red]"
            )
            raise typer.Exit(code=1)
        if current is None and amount < 0:
            console.print(f"[red]❌ {user.email} has no balance to deduct from[/red]")
            raise typer.Exit(code=1)
        return user, await balances.add_credits(user.id, amount)

    user, balance = _run(action)
    console.print(
        f"[green]✅ Balance of {user.email} is now {balance.token_credits}[/green]"
    )
    _print_balance(user, balance)
