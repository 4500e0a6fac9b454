# docman/services/document_store.py
from flask import current_app
from sqlalchemy import or_

from docman.models import db, Document, FileAttachment

EDITABLE_FIELDS = ("title", "note")
ATTACHMENT_FIELDS = (
    "file_id",
    "original_name",
    "filename",
    "web_url",
    "download_url",
    "size",
    "mimetype",
    "uploaded_at",
)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_attachment(fields: dict, position: int = 0) -> FileAttachment:
    values = {k: fields.get(k) for k in ATTACHMENT_FIELDS if fields.get(k) is not None}
    values.setdefault("filename", values.get("original_name"))
    return FileAttachment(position=position, **values)


class DocumentStore:
    """Owner-scoped access to documents and their attachments.

    Every lookup of a single document matches on both the document id and the
    owner id, so a document belonging to someone else looks exactly like one
    that does not exist.
    """

    def _owned(self, document_id, owner_id):
        if owner_id is None:
            return None
        return Document.query.filter_by(id=document_id, owner_id=owner_id).first()

    def get(self, document_id, owner_id):
        return self._owned(document_id, owner_id)

    def create(self, owner_id, title, note, attachments=()) -> Document:
        doc = Document(owner_id=owner_id, title=title or "", note=note or "")
        doc.attachments = [build_attachment(a, i) for i, a in enumerate(attachments)]
        db.session.add(doc)
        db.session.commit()
        current_app.logger.info("📄 Created document %s with %d file(s)", doc.id, len(doc.attachments))
        return doc

    def list_by_owner(self, owner_id, page: int = 1, page_size: int = 10, search=None):
        query = Document.query.filter(Document.owner_id == owner_id)
        search = (search or "").strip()
        if search:
            pattern = _like_pattern(search)
            query = query.filter(or_(
                Document.title.ilike(pattern, escape="\\"),
                Document.note.ilike(pattern, escape="\\"),
                Document.attachments.any(FileAttachment.original_name.ilike(pattern, escape="\\")),
            ))

        total = query.count()
        items = (
            query.order_by(Document.created_at.desc(), Document.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def update_metadata(self, document_id, owner_id, fields: dict):
        doc = self._owned(document_id, owner_id)
        if doc is None:
            return None
        for key in EDITABLE_FIELDS:
            if key in fields and fields[key] is not None:
                setattr(doc, key, fields[key])
        db.session.commit()
        return doc

    def add_attachments(self, document_id, owner_id, attachments):
        doc = self._owned(document_id, owner_id)
        if doc is None:
            return None
        start = doc.next_position()
        for offset, fields in enumerate(attachments):
            doc.attachments.append(build_attachment(fields, start + offset))
        db.session.commit()
        return doc

    def get_attachment(self, document_id, owner_id, attachment_id):
        doc = self._owned(document_id, owner_id)
        if doc is None:
            return None
        return next((a for a in doc.attachments if a.id == attachment_id), None)

    def remove_attachment(self, document_id, owner_id, attachment_id):
        doc = self._owned(document_id, owner_id)
        if doc is None:
            return None
        attachment = next((a for a in doc.attachments if a.id == attachment_id), None)
        if attachment is None:
            return None
        doc.attachments.remove(attachment)
        db.session.commit()
        return doc

    def delete(self, document_id, owner_id):
        doc = self._owned(document_id, owner_id)
        if doc is None:
            return None
        db.session.delete(doc)
        db.session.commit()
        current_app.logger.info("🗑️ Deleted document %s", document_id)
        return doc
