"""Operator commands: admin registry and sign-in links."""

from __future__ import annotations

import click
from flask import current_app, url_for
from flask.cli import AppGroup

from licencias.auth_backend import normalize_email
from licencias.errors import StoreError
from licencias.extensions import db, portal
from licencias.models import User
from licencias.workflow import utc_timestamp


admins_cli = AppGroup("admins", help="Manage the administrator registry.")
users_cli = AppGroup("users", help="Manage portal users.")


def _services():
    services = portal()
    error = services.controller.configuration_error
    if error is not None:
        raise click.ClickException(error.message)
    return services


def _user_or_fail(email: str) -> User:
    normalized = normalize_email(email)
    user = db.session.execute(db.select(User).where(User.email == normalized)).scalar_one_or_none()
    if user is None:
        raise click.ClickException(f"No user with e-mail {normalized}.")
    return user


@admins_cli.command("grant")
@click.argument("email")
def grant_admin(email: str) -> None:
    """Add the user to the administrator registry."""
    services = _services()
    user = _user_or_fail(email)
    path = services.settings.admin_entry_path(user.get_id())
    try:
        if services.store.get(path) is not None:
            click.echo(f"{user.email} is already an administrator.")
            return
        services.store.create(
            services.settings.admins_collection,
            {"email": user.email, "grantedAt": utc_timestamp()},
            doc_id=user.get_id(),
        )
    except StoreError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"Granted administrator access to {user.email}.")


@admins_cli.command("revoke")
@click.argument("email")
def revoke_admin(email: str) -> None:
    """Remove the user from the administrator registry."""
    services = _services()
    user = _user_or_fail(email)
    try:
        services.store.delete(services.settings.admin_entry_path(user.get_id()))
    except StoreError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"Revoked administrator access for {user.email}.")


@admins_cli.command("list")
def list_admins() -> None:
    services = _services()
    try:
        entries = services.store.snapshot(services.settings.admins_collection)
    except StoreError as exc:
        raise click.ClickException(exc.message) from exc
    for entry in entries:
        click.echo(f"{entry.id}\t{entry.data.get('email', '')}\t{entry.data.get('grantedAt', '')}")


@users_cli.command("sign-in-link")
@click.argument("email")
def sign_in_link(email: str) -> None:
    """Print a short-lived sign-in link for the user."""
    services = _services()
    user = _user_or_fail(email)
    token = services.controller.auth.issue_sign_in_token(user)
    with current_app.test_request_context(base_url=current_app.config["APP_URL"]):
        click.echo(url_for("auth.token_login", token=token, _external=True))
