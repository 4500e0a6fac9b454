import uuid
from docman.models import db


def new_attachment_id() -> str:
    return uuid.uuid4().hex


class FileAttachment(db.Model):
    __tablename__ = "file_attachments"

    id = db.Column(db.String(32), primary_key=True, default=new_attachment_id)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    file_id = db.Column(db.String(128), nullable=False)  # OneDrive item id
    original_name = db.Column(db.String(512), nullable=False)
    filename = db.Column(db.String(512), nullable=False)
    web_url = db.Column(db.String(1024))
    download_url = db.Column(db.Text)
    size = db.Column(db.BigInteger, nullable=False, default=0)
    mimetype = db.Column(db.String(255), nullable=False, default="application/octet-stream")
    uploaded_at = db.Column(db.DateTime)

    document = db.relationship("Document", back_populates="attachments")

    def __repr__(self):
        return f"<FileAttachment {self.original_name}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_name": self.original_name,
            "filename": self.filename,
            "file_id": self.file_id,
            "web_url": self.web_url,
            "download_url": self.download_url,
            "size": self.size,
            "mimetype": self.mimetype,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }
