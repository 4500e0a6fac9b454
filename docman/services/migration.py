# docman/services/migration.py
"""One-shot batch passes over the documents table.

Both passes are meant to run offline from the ``flask`` CLI, single instance,
with no concurrent writers. Running either of them again after a complete run
finds no candidates and issues no writes.
"""
from dataclasses import dataclass

from flask import current_app

from docman.models import db, Document, FileAttachment, LEGACY_FILE_FIELDS
from docman.services.credential_store import CredentialStore


class MigrationError(Exception):
    pass


@dataclass
class MigrationReport:
    scanned: int = 0
    migrated: int = 0


def _legacy_candidates():
    return (
        Document.query
        .filter(Document.file_id.isnot(None))
        .filter(~Document.attachments.any())
        .order_by(Document.id)
    )


def attachment_from_legacy(doc: Document) -> FileAttachment:
    return FileAttachment(
        position=0,
        file_id=doc.file_id,
        original_name=doc.original_name or doc.filename or doc.file_id,
        filename=doc.filename or doc.original_name or doc.file_id,
        web_url=doc.web_url,
        download_url=doc.download_url,
        size=doc.size or 0,
        mimetype=doc.mimetype or "application/octet-stream",
        uploaded_at=doc.created_at,
    )


def migrate_legacy_documents(dry_run: bool = False, batch_size: int = 100) -> MigrationReport:
    """Move the top-level file columns of single-file documents into one attachment each."""
    logger = current_app.logger
    report = MigrationReport(scanned=Document.query.count())

    pending = 0
    for doc in _legacy_candidates().all():
        logger.info("Migrating document: %s - %s", doc.id, doc.title or doc.original_name)
        report.migrated += 1
        if dry_run:
            continue

        doc.attachments.append(attachment_from_legacy(doc))
        for field in LEGACY_FILE_FIELDS:
            setattr(doc, field, None)

        pending += 1
        if pending >= batch_size:
            db.session.commit()
            pending = 0

    if pending:
        db.session.commit()

    logger.info(
        "✅ Migration complete. Scanned %d documents. Migrated %d documents.",
        report.scanned, report.migrated
    )
    return report


def resolve_owner(email=None, identity_key=None, store=None):
    store = store or CredentialStore()
    if identity_key:
        user = store.find_by_identity_key(identity_key)
        target = identity_key
    else:
        target = email or current_app.config.get("DEFAULT_OWNER_EMAIL")
        if not target:
            raise MigrationError("No target user given and DEFAULT_OWNER_EMAIL is not set")
        matches = store.find_all_by_email(target)
        if len(matches) > 1:
            raise MigrationError(
                f"{len(matches)} users share the email {target}; use --identity-key instead"
            )
        user = matches[0] if matches else None

    if user is None:
        raise MigrationError(
            f"User {target} not found. Make sure they have logged in at least once."
        )
    return user


def assign_default_owner(email=None, identity_key=None, dry_run: bool = False) -> MigrationReport:
    """Give every ownerless document to the user identified by ``email`` or ``identity_key``."""
    user = resolve_owner(email=email, identity_key=identity_key)
    current_app.logger.info("Found user: %s (%s), id=%s", user.name, user.email, user.id)

    ownerless = Document.query.filter(Document.owner_id.is_(None))
    report = MigrationReport(scanned=ownerless.count())
    if report.scanned == 0 or dry_run:
        current_app.logger.info("Found %d documents without owner; nothing written", report.scanned)
        return report

    report.migrated = ownerless.update({Document.owner_id: user.id}, synchronize_session=False)
    db.session.commit()
    current_app.logger.info("✅ Successfully updated %d documents", report.migrated)
    return report
