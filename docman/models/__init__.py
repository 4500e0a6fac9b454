from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from docman.models.user_model import User  # noqa: E402
from docman.models.document_model import Document, LEGACY_FILE_FIELDS  # noqa: E402
from docman.models.attachment_model import FileAttachment  # noqa: E402

__all__ = ["db", "User", "Document", "FileAttachment", "LEGACY_FILE_FIELDS"]
