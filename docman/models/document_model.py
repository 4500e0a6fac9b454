from datetime import datetime, timezone
from docman.models import db

# Top-level file columns of the single-file document layout
LEGACY_FILE_FIELDS = (
    "original_name",
    "filename",
    "file_id",
    "web_url",
    "download_url",
    "size",
    "mimetype",
)


def _utcnow():
    return datetime.now(timezone.utc)


class Document(db.Model):
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    title = db.Column(db.String(512), nullable=False, default="")
    note = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False, index=True)

    # legacy single-file shape; NULL on migrated and new documents
    original_name = db.Column(db.String(512))
    filename = db.Column(db.String(512))
    file_id = db.Column(db.String(128))
    web_url = db.Column(db.String(1024))
    download_url = db.Column(db.Text)
    size = db.Column(db.BigInteger)
    mimetype = db.Column(db.String(255))

    owner = db.relationship("User", back_populates="documents")
    attachments = db.relationship(
        "FileAttachment",
        back_populates="document",
        order_by="FileAttachment.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Document {self.id} {self.title!r}>"

    @property
    def has_legacy_file(self) -> bool:
        return self.file_id is not None

    def next_position(self) -> int:
        return max((a.position for a in self.attachments), default=-1) + 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "note": self.note,
            "owner_id": self.owner_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "files": [a.to_dict() for a in self.attachments],
        }
