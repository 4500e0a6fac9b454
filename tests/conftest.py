import itertools
import time

import pytest
from sqlalchemy import event

from app import create_app
from docman.config import TestConfig
from docman.models import db, User
from docman.services.document_store import DocumentStore
from docman.services.microsoft_graph import OneDriveServiceError


class FakeStream:
    def __init__(self, content: bytes):
        self.content = content
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeDrive:
    """In-memory stand-in for MicrosoftGraphService, installed as the storage factory."""

    def __init__(self):
        self.items = {}
        self.deleted = []
        self.factory_calls = []
        self.fail_upload_after = None
        self.fail_delete = set()
        self._ids = itertools.count(1)

    def __call__(self, **kwargs):
        self.factory_calls.append(kwargs)
        return self

    def upload_file(self, filename, content, content_type=None):
        if self.fail_upload_after is not None and len(self.items) >= self.fail_upload_after:
            raise OneDriveServiceError("Upload failed [507]: quota exceeded")
        item_id = f"drive-item-{next(self._ids)}"
        self.items[item_id] = content
        return {
            "id": item_id,
            "name": filename,
            "webUrl": f"https://onedrive.example/view/{item_id}",
            "@microsoft.graph.downloadUrl": f"https://onedrive.example/content/{item_id}",
            "createdDateTime": "2024-05-01T10:00:00Z",
        }

    def open_file_stream(self, file_id):
        if file_id not in self.items:
            raise OneDriveServiceError("Download failed [404]")
        return FakeStream(self.items[file_id])

    def delete_file(self, file_id):
        if file_id in self.fail_delete:
            raise OneDriveServiceError("Delete failed [500]: boom")
        self.items.pop(file_id, None)
        self.deleted.append(file_id)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def drive(app):
    fake = FakeDrive()
    app.extensions["docman.token_lifecycle"].storage_factory = fake
    return fake


@pytest.fixture
def make_user(app):
    def _make(ms_id="oid-alice", email="alice@example.com", name="Alice", refresh_token="rt-alice"):
        with app.app_context():
            user = User(ms_id=ms_id, email=email, name=name, refresh_token=refresh_token)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make


@pytest.fixture
def make_document(app):
    def _make(owner_id, title="Quarterly report", note="", files=()):
        with app.app_context():
            return DocumentStore().create(owner_id, title, note, list(files)).to_dict()
    return _make


@pytest.fixture
def login(client):
    def _login(user_id, access_token="at-test"):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user_id)
            sess["_fresh"] = True
            sess["access_token"] = access_token
            sess["token_expires"] = time.time() + 3600
    return _login


@pytest.fixture
def write_statements(app_ctx):
    """Collects INSERT/UPDATE/DELETE statements issued while the test runs."""
    statements = []

    def _track(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE")):
            statements.append(statement)

    engine = db.engine
    event.listen(engine, "before_cursor_execute", _track)
    yield statements
    event.remove(engine, "before_cursor_execute", _track)


def attachment(file_id="drive-item-x", name="scan.pdf", size=1024, mimetype="application/pdf"):
    return {
        "file_id": file_id,
        "original_name": name,
        "filename": name,
        "web_url": f"https://onedrive.example/view/{file_id}",
        "download_url": f"https://onedrive.example/content/{file_id}",
        "size": size,
        "mimetype": mimetype,
    }
