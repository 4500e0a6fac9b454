import click
from flask.cli import with_appcontext

from docman.services.migration import (
    MigrationError,
    assign_default_owner,
    migrate_legacy_documents,
)


@click.command("migrate-legacy-docs")
@click.option("--dry-run", is_flag=True, help="Report candidates without writing.")
@with_appcontext
def migrate_legacy_docs(dry_run):
    """Turn single-file documents into documents with one attachment."""
    report = migrate_legacy_documents(dry_run=dry_run)
    verb = "Would migrate" if dry_run else "Migrated"
    click.echo(f"✅ Scanned {report.scanned} documents. {verb} {report.migrated} documents.")


@click.command("assign-owner")
@click.option("--email", help="Email of the user who receives ownerless documents.")
@click.option("--identity-key", help="Provider id (oid) of that user, instead of --email.")
@click.option("--dry-run", is_flag=True, help="Count ownerless documents without writing.")
@with_appcontext
def assign_owner(email, identity_key, dry_run):
    """Assign every document without an owner to one user."""
    try:
        report = assign_default_owner(email=email, identity_key=identity_key, dry_run=dry_run)
    except MigrationError as e:
        raise click.ClickException(str(e))

    if report.scanned == 0:
        click.echo("No documents to migrate. All documents already have an owner.")
    elif dry_run:
        click.echo(f"Found {report.scanned} documents without owner (dry run, nothing written).")
    else:
        click.echo(f"✅ Successfully updated {report.migrated} documents")
