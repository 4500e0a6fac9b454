# docman/routes/documents.py
import math

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from docman.controllers.auth_controller import get_lifecycle_manager
from docman.controllers.document_controller import (
    delete_blobs,
    parse_metadata,
    stream_attachment,
    upload_files,
)
from docman.errors import NotFoundError, ValidationError
from docman.services.document_store import DocumentStore

documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")
store = DocumentStore()


def _positive_int(name, default):
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"'{name}' must be a positive integer")
    if value < 1:
        raise ValidationError(f"'{name}' must be a positive integer")
    return value


def _uploaded_files():
    files = [f for f in request.files.getlist("files") if f and f.filename]
    if not files:
        raise ValidationError("No files uploaded")
    limit = current_app.config["MAX_FILES_PER_UPLOAD"]
    if len(files) > limit:
        raise ValidationError(f"At most {limit} files can be uploaded at once")
    return files


def _metadata_fields(payload) -> dict:
    fields = {}
    for key in ("title", "note"):
        if key not in payload or payload[key] is None:
            continue
        if not isinstance(payload[key], str):
            raise ValidationError(f"'{key}' must be a string")
        fields[key] = payload[key]
    return fields


def _owned_or_404(document_id):
    doc = store.get(document_id, current_user.id)
    if doc is None:
        raise NotFoundError()
    return doc


@documents_bp.route("", methods=["GET"])
@login_required
def list_documents():
    page = _positive_int("page", 1)
    limit = min(
        _positive_int("limit", current_app.config["DEFAULT_PAGE_SIZE"]),
        current_app.config["MAX_PAGE_SIZE"],
    )
    search = request.args.get("search", "")

    items, total = store.list_by_owner(current_user.id, page, limit, search)
    total_pages = math.ceil(total / limit)
    return jsonify({
        "documents": [d.to_dict() for d in items],
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_documents": total,
            "has_next_page": page < total_pages,
            "has_prev_page": page > 1,
            "limit": limit,
        },
    })


@documents_bp.route("", methods=["POST"])
@login_required
def create_document():
    fields = _metadata_fields(request.get_json(silent=True) or {})
    doc = store.create(current_user.id, fields.get("title", "Untitled"), fields.get("note", ""))
    return jsonify(doc.to_dict()), 201


@documents_bp.route("/upload", methods=["POST"])
@login_required
def upload_documents():
    files = _uploaded_files()
    svc = get_lifecycle_manager().storage_for(current_user)
    metadata = parse_metadata(request.form.get("metadata"))

    uploaded = upload_files(svc, files)
    title = metadata.get("title") if isinstance(metadata.get("title"), str) else None
    note = metadata.get("note") if isinstance(metadata.get("note"), str) else None
    doc = store.create(
        current_user.id,
        title or files[0].filename or "Untitled",
        note or "",
        uploaded,
    )
    return jsonify(doc.to_dict()), 201


@documents_bp.route("/<int:document_id>", methods=["GET"])
@login_required
def get_document(document_id):
    return jsonify(_owned_or_404(document_id).to_dict())


@documents_bp.route("/<int:document_id>", methods=["PUT"])
@login_required
def update_document(document_id):
    fields = _metadata_fields(request.get_json(silent=True) or {})
    doc = store.update_metadata(document_id, current_user.id, fields)
    if doc is None:
        raise NotFoundError()
    return jsonify(doc.to_dict())


@documents_bp.route("/<int:document_id>", methods=["DELETE"])
@login_required
def delete_document(document_id):
    doc = _owned_or_404(document_id)
    file_ids = [a.file_id for a in doc.attachments]
    if file_ids:
        svc = get_lifecycle_manager().storage_for(current_user)
        deleted = delete_blobs(svc, file_ids)
        current_app.logger.info("🗑️ Removed %d/%d drive items of document %s", deleted, len(file_ids), document_id)

    if store.delete(document_id, current_user.id) is None:
        raise NotFoundError()
    return jsonify({"message": "Document deleted", "id": document_id})


@documents_bp.route("/<int:document_id>/files", methods=["POST"])
@login_required
def add_files(document_id):
    _owned_or_404(document_id)
    files = _uploaded_files()
    svc = get_lifecycle_manager().storage_for(current_user)

    uploaded = upload_files(svc, files)
    doc = store.add_attachments(document_id, current_user.id, uploaded)
    if doc is None:
        # document vanished while uploading
        delete_blobs(svc, [f["file_id"] for f in uploaded])
        raise NotFoundError()
    return jsonify(doc.to_dict()), 201


@documents_bp.route("/<int:document_id>/files/<attachment_id>", methods=["DELETE"])
@login_required
def remove_file(document_id, attachment_id):
    _owned_or_404(document_id)
    attachment = store.get_attachment(document_id, current_user.id, attachment_id)
    if attachment is None:
        raise NotFoundError("File not found")

    svc = get_lifecycle_manager().storage_for(current_user)
    delete_blobs(svc, [attachment.file_id])

    doc = store.remove_attachment(document_id, current_user.id, attachment_id)
    if doc is None:
        raise NotFoundError("File not found")
    return jsonify(doc.to_dict())


@documents_bp.route("/download/<int:document_id>/<attachment_id>", methods=["GET"])
@login_required
def download_file(document_id, attachment_id):
    _owned_or_404(document_id)
    attachment = store.get_attachment(document_id, current_user.id, attachment_id)
    if attachment is None:
        raise NotFoundError("File not found")

    svc = get_lifecycle_manager().storage_for(current_user)
    current_app.logger.info("⬇️ Streaming drive item %s", attachment.file_id)
    return stream_attachment(svc, attachment)
