"""CLI tools for Formbridge operations."""

import asyncio
import uuid

import click

from formbridge.core.deps import build_retry_coordinator, build_sync_orchestrator, get_client_factory
from formbridge.core.errors import FormbridgeError
from formbridge.core.structured_logging import configure_logging
from formbridge.db.session import SessionLocal
from formbridge.services import form_service
from formbridge.services.sync_service import SyncPolicy


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level: str | None):
    """Formbridge CLI tools."""
    configure_logging(log_level)


@cli.command()
@click.argument("form_id", type=click.UUID)
def resync(form_id: uuid.UUID):
    """
    Pull every Airtable record of a form's table into local responses.

    Example:
        formbridge resync 3f0c...-...
    """
    with SessionLocal() as db:
        sync = build_sync_orchestrator(db, get_client_factory())
        try:
            result = asyncio.run(sync.sync_all_records_for_form(form_id))
        except FormbridgeError as e:
            click.echo(f"❌ Error: {e}")
            raise SystemExit(1)

    click.echo(f"✓ Synced {result.synced_count} record(s)")
    click.echo(f"  Errors: {result.error_count}")
    if result.skipped_count:
        click.echo(f"  Skipped: {result.skipped_count}")


@cli.command("retry-failed")
@click.option("--limit", default=100, show_default=True, help="Max responses to retry")
@click.option("--no-delay", is_flag=True, help="Skip the pause between attempts")
def retry_failed(limit: int, no_delay: bool):
    """Run one retry sweep over failed outbound syncs."""
    with SessionLocal() as db:
        policy = SyncPolicy.immediate() if no_delay else SyncPolicy.from_settings()
        sync = build_sync_orchestrator(db, get_client_factory(), policy=policy)
        result = asyncio.run(build_retry_coordinator(sync).retry_failed_syncs(limit))

    click.echo(
        f"✓ Retried {result.attempted}: {result.succeeded} succeeded, "
        f"{result.failed} failed, {result.skipped} skipped"
    )


@cli.command("check-rules")
@click.argument("form_id", type=click.UUID)
def check_rules(form_id: uuid.UUID):
    """Report conditional-rule errors and cycles for a stored form."""
    with SessionLocal() as db:
        form = form_service.get_form(db, form_id)
        if not form:
            click.echo(f"❌ Form {form_id} not found")
            raise SystemExit(1)
        check = form_service.check_question_rules(form.questions or [])

    if check.valid:
        click.echo("✓ Conditional logic is valid")
        for key, controlled in check.dependents.items():
            click.echo(f"  {key} controls: {', '.join(controlled)}")
        return

    for problem in check.errors:
        for message in problem["errors"]:
            click.echo(f"  {problem['question_key']}: {message}")
    for cycle in check.cycles:
        click.echo(f"  cycle: {' -> '.join(cycle)}")
    raise SystemExit(1)


if __name__ == "__main__":
    cli()
