"""Operator command line for idbridge."""

import typer

from .balance_commands import balance_app

app = typer.Typer(
    help="idbridge operator CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(balance_app, name="balance")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
