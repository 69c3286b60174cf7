"""CLI command for the monthly credit allowance reset.

Usage:
    flask reset-credits             # Reset every balance that is due
    flask reset-credits --user 1    # Reset one user's balance if due
"""

from __future__ import annotations

import click
from flask.cli import with_appcontext


@click.command("reset-credits")
@click.option("--user", "-u", type=int, help="Reset for specific user ID only")
@with_appcontext
def reset_credits_command(user: int | None):
    """Restore the monthly allowance for balances last reset in an earlier month."""
    from reverie.domains.billing.services import credit_service

    if user:
        if credit_service.reset_if_due(user):
            click.echo(f"  ✓ User {user}: allowance restored")
        else:
            click.echo(f"  - User {user}: already reset this month")
        return

    count = credit_service.reset_all_due()
    click.echo(f"  ✓ Reset {count} balance(s)")


def register_commands(app):
    """Register CLI commands with the app."""
    app.cli.add_command(reset_credits_command)
