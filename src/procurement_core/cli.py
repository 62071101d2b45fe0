"""Typer CLI for Procurement-Core."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="procurement", help="Procurement-Core: supplier, contract and payment back office")
console = Console()


def _configure_logging() -> None:
    from procurement_core.common.config import get_settings
    from procurement_core.common.logging import setup_logging

    setup_logging(get_settings().log_level)


async def _with_session(work):
    from procurement_core.deps import get_db

    db = get_db()
    await db.init()
    await db.create_all()
    try:
        async with db.get_session() as session:
            return await work(session)
    finally:
        await db.close()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Procurement-Core API server."""
    import uvicorn
    from procurement_core.app import create_app

    _configure_logging()
    console.print(f"[bold green]Starting Procurement-Core on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("init-db")
def init_db():
    """Create all tables in the configured database."""
    from procurement_core.common.config import get_settings

    _configure_logging()

    async def _noop(session):
        return None

    asyncio.run(_with_session(_noop))
    console.print(f"[bold green]Database ready[/bold green]: {get_settings().db_url}")


@app.command("create-admin")
def create_admin(
    email: str = typer.Argument(..., help="Administrator email"),
    first_name: str = typer.Option("System", help="First name"),
    last_name: str = typer.Option("Administrator", help="Last name"),
):
    """Create the first ADMIN user (idempotent) and print a bearer token."""
    from procurement_core.common.security import issue_token
    from procurement_core.deps import get_user_service
    from procurement_core.users.service import principal_for

    _configure_logging()

    async def _create(session):
        user = await get_user_service().bootstrap_admin(session, email, first_name, last_name)
        return principal_for(user)

    principal = asyncio.run(_with_session(_create))
    console.print(f"[bold]Admin:[/bold] {principal.email} ({principal.id})")
    console.print(f"[bold]Token:[/bold] {issue_token(principal)}")


@app.command("init-system")
def init_system(
    email: str = typer.Argument(..., help="Email of the ADMIN running the initialization"),
):
    """Insert the default system settings that are missing."""
    from procurement_core.common.exceptions import ProcurementError
    from procurement_core.common.security import RequestContext
    from procurement_core.deps import get_system_setting_service, get_user_service
    from procurement_core.users.service import principal_for

    _configure_logging()

    async def _run(session):
        user = await get_user_service().get_by_email(session, email)
        if user is None:
            return None
        ctx = RequestContext(principal=principal_for(user), user_agent="procurement-cli")
        return await get_system_setting_service().initialize_system(session, ctx)

    try:
        created = asyncio.run(_with_session(_run))
    except ProcurementError as e:
        console.print(f"[bold red]{e.code}[/bold red]: {e.message}")
        raise typer.Exit(1)
    if created is None:
        console.print(f"[bold red]No user[/bold red] with email {email}")
        raise typer.Exit(1)

    table = Table(title="System settings")
    table.add_column("Created key")
    for key in created:
        table.add_row(key)
    console.print(table)
    console.print(f"{len(created)} setting(s) created")


@app.command("issue-token")
def issue_token_cmd(
    email: str = typer.Argument(..., help="Email of an existing active user"),
):
    """Mint a bearer token for an existing user."""
    from procurement_core.common.security import issue_token
    from procurement_core.deps import get_user_service
    from procurement_core.users.service import principal_for

    _configure_logging()

    async def _lookup(session):
        user = await get_user_service().get_by_email(session, email)
        if user is None or not user.is_active:
            return None
        return principal_for(user)

    principal = asyncio.run(_with_session(_lookup))
    if principal is None:
        console.print(f"[bold red]No active user[/bold red] with email {email}")
        raise typer.Exit(1)
    console.print(issue_token(principal))


@app.command("expire-contracts")
def expire_contracts(
    email: str = typer.Argument(..., help="Email of the MANAGER or ADMIN running the job"),
    remind: bool = typer.Option(True, help="Also remind owners of contracts expiring soon"),
    within_days: Optional[int] = typer.Option(None, help="Reminder window in days (default from settings)"),
):
    """Expire overdue ACTIVE contracts and send expiry reminders."""
    from procurement_core.common.exceptions import ProcurementError
    from procurement_core.common.security import RequestContext
    from procurement_core.deps import get_contract_service, get_user_service
    from procurement_core.users.service import principal_for

    _configure_logging()

    async def _run(session):
        user = await get_user_service().get_by_email(session, email)
        if user is None:
            return None
        ctx = RequestContext(principal=principal_for(user), user_agent="procurement-cli")
        svc = get_contract_service()
        expired = await svc.expire_overdue(session, ctx)
        reminded = await svc.notify_expiring(session, ctx, within_days) if remind else 0
        return expired, reminded

    try:
        outcome = asyncio.run(_with_session(_run))
    except ProcurementError as e:
        console.print(f"[bold red]{e.code}[/bold red]: {e.message}")
        raise typer.Exit(1)
    if outcome is None:
        console.print(f"[bold red]No user[/bold red] with email {email}")
        raise typer.Exit(1)

    expired, reminded = outcome
    table = Table(title="Contract expiry")
    table.add_column("Expired contract")
    for contract_id in expired:
        table.add_row(contract_id)
    console.print(table)
    console.print(f"{len(expired)} expired, {reminded} reminder(s) sent")


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Procurement-Core server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green]: v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
