"""CLI tools for portal administration."""

import sys

import click

from app.core.async_utils import run_async
from app.core.structured_logging import configure_logging
from app.db.session import SessionLocal


@click.group()
@click.option("--log-level", default="INFO", show_default=True, help="Logging level")
def cli(log_level: str):
    """Community portal CLI tools."""
    configure_logging(log_level.upper())


@cli.command()
@click.option("--full", is_flag=True, help="Reset and re-import everything (destructive)")
def sync_directory(full: bool):
    """
    Pull events and people from Luma.

    Incremental by default (rows created since the last sync). --full replaces
    all events and people in one transaction and relinks member accounts.

    Sync jobs are tracked in the server's memory, so this command cannot see
    a reset running on a live server. Against a running server use
    watch-sync, which starts or joins the server's job instead.

    Example:
        python -m app.cli sync-directory --full
    """
    from app.services import directory_sync_service
    from app.services.sync_job_service import SyncJob

    if full:
        job = SyncJob()
        try:
            result = run_async(directory_sync_service.run_reset_and_sync(job))
        except Exception as e:
            click.echo(f"❌ Error: {e}")
            sys.exit(1)
        for message in job.messages:
            click.echo(f"  [{message.progress or 0:>3}%] {message.message}")
        click.echo(
            f"✓ Reset & sync complete: {result['events']} events, {result['people']} people "
            f"({result['skipped']} skipped, {result['relinked']} accounts relinked)"
        )
        return

    try:
        result = run_async(directory_sync_service.sync_directory(incremental=True))
    except Exception as e:
        click.echo(f"❌ Error: {e}")
        sys.exit(1)
    since = result["since"].isoformat() if result["since"] else "the beginning"
    click.echo(f"✓ Synced since {since}")
    click.echo(f"  Created: {result['created']}  Updated: {result['updated']}  Skipped: {result['skipped']}")
    click.echo(f"  Relinked accounts: {result['relinked']}")


@cli.command()
@click.option("--base-url", default="http://localhost:8000", show_default=True, help="Portal API URL")
@click.option("--session", "session_cookie", envvar="PORTAL_SESSION", required=True, help="Admin session cookie value")
@click.option("--job-id", default=None, help="Follow an existing job instead of starting one")
@click.option("--poll", is_flag=True, help="Poll the job snapshot instead of streaming")
def watch_sync(base_url: str, session_cookie: str, job_id: str | None, poll: bool):
    """
    Start (or join) a reset & sync on a running server and follow its progress.

    Example:
        PORTAL_SESSION=... python -m app.cli watch-sync --base-url https://portal.example.com
    """
    from app.client import PortalClient, SyncProgressPoller, SyncProgressStream

    last_shown = {"message": None}

    def show(state) -> None:
        if state.message and state.message != last_shown["message"]:
            last_shown["message"] = state.message
            click.echo(f"  [{state.progress:>3}%] {state.message}")

    async def follow():
        async with PortalClient(base_url, session_cookie=session_cookie) as api:
            if poll:
                return await SyncProgressPoller(api, on_update=show).run(job_id)
            async with SyncProgressStream(api, on_update=show) as stream:
                return await stream.run(job_id)

    state = run_async(follow())
    if state.status == "success":
        result = state.result or {}
        click.echo(f"✓ Sync complete: {result.get('events', 0)} events, {result.get('people', 0)} people")
    else:
        click.echo(f"❌ Sync failed: {state.error}")
        sys.exit(1)


@cli.command()
@click.option("--email", required=True, help="Member email to grant admin")
@click.option("--revoke", is_flag=True, help="Remove the admin flag instead")
def make_admin(email: str, revoke: bool):
    """
    Grant (or revoke) admin access. The member must already have an account.

    Example:
        python -m app.cli make-admin --email "organizer@example.com"
    """
    from app.services import user_service

    db = SessionLocal()
    try:
        user = user_service.set_admin(db, email, is_admin=not revoke)
        if not user:
            click.echo(f"❌ User not found: {email}")
            sys.exit(1)
        action = "Revoked admin from" if revoke else "Granted admin to"
        click.echo(f"✓ {action} {user.email}")
        click.echo("  Existing sessions were signed out")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        sys.exit(1)
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m app.cli revoke-sessions --email "user@example.com"
    """
    from app.services import user_service

    db = SessionLocal()
    try:
        user = user_service.get_user_by_email(db, email)
        if not user:
            click.echo(f"❌ User not found: {email}")
            sys.exit(1)

        old_version = user.token_version
        user_service.revoke_all_sessions(db, user.id)

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        sys.exit(1)
    finally:
        db.close()


@cli.command()
@click.option("--dry-run", is_flag=True, help="Report what would be sent without sending")
def process_claim_invitations(dry_run: bool):
    """
    Run the claim-invitation drip once (what the hourly cron calls).

    Example:
        python -m app.cli process-claim-invitations --dry-run
    """
    from app.services import claim_invitation_service

    db = SessionLocal()
    try:
        report = run_async(claim_invitation_service.process_invitations(db, dry_run=dry_run or None))
        if report.skipped:
            click.echo("→ Another run is in progress, skipped")
            return
        prefix = "[dry run] " if report.dry_run else ""
        click.echo(f"✓ {prefix}Claim invitations processed")
        click.echo(f"  Completed: {report.completed}")
        click.echo(f"  Initial emails: {report.initial_sent}")
        click.echo(f"  Follow-ups: {report.follow_ups_sent}")
        click.echo(f"  Final notices: {report.final_notices}")
        click.echo(f"  Failed: {report.failed}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    cli()
