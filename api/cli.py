"""Maintenance commands: `flask seed-roles` and `flask make-admin EMAIL`."""
import click
from flask import Flask

from api.extensions import services
from models.repository import ADMIN_ROLE


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-roles")
    def seed_roles():
        """Create the default roles and their permissions."""
        services().users.seed_default_roles()
        click.echo("Default roles seeded")

    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Grant the ADMIN role to the user with EMAIL."""
        repo = services().users
        user = repo.find_by_email(email)
        if user is None:
            raise click.ClickException(f"No user with email {email}")
        repo.seed_default_roles()
        repo.grant_role(user, ADMIN_ROLE)
        click.echo(f"{user.email} is now an admin")
