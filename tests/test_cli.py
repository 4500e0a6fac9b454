from docman.models import db, Document


def _seed(app, owner_id=None):
    with app.app_context():
        doc = Document(
            owner_id=owner_id,
            title="Legacy",
            original_name="old.docx",
            file_id="legacy-item",
            size=10,
            mimetype="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        )
        db.session.add(doc)
        db.session.commit()
        return doc.id


def test_migrate_legacy_docs_command(app):
    doc_id = _seed(app)
    runner = app.test_cli_runner()

    first = runner.invoke(args=["migrate-legacy-docs"])
    second = runner.invoke(args=["migrate-legacy-docs"])

    assert first.exit_code == 0
    assert "Migrated 1 documents" in first.output
    assert "Migrated 0 documents" in second.output
    with app.app_context():
        doc = db.session.get(Document, doc_id)
        assert doc.attachments[0].original_name == "old.docx"


def test_migrate_legacy_docs_dry_run(app):
    doc_id = _seed(app)

    result = app.test_cli_runner().invoke(args=["migrate-legacy-docs", "--dry-run"])

    assert "Would migrate 1 documents" in result.output
    with app.app_context():
        assert db.session.get(Document, doc_id).has_legacy_file


def test_assign_owner_command(app, make_user):
    owner = make_user(email="owner@example.com")
    doc_id = _seed(app)
    runner = app.test_cli_runner()

    first = runner.invoke(args=["assign-owner", "--email", "owner@example.com"])
    second = runner.invoke(args=["assign-owner", "--email", "owner@example.com"])

    assert first.exit_code == 0
    assert "Successfully updated 1 documents" in first.output
    assert "All documents already have an owner" in second.output
    with app.app_context():
        assert db.session.get(Document, doc_id).owner_id == owner


def test_assign_owner_unknown_user_fails(app):
    _seed(app)

    result = app.test_cli_runner().invoke(args=["assign-owner", "--email", "ghost@example.com"])

    assert result.exit_code != 0
    assert "ghost@example.com not found" in result.output
