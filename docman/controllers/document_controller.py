# docman/controllers/document_controller.py
import json
import unicodedata
from urllib.parse import quote

from dateutil.parser import parse as parse_datetime
from flask import Response, current_app, stream_with_context
from werkzeug.utils import secure_filename

from docman.services.microsoft_graph import DOWNLOAD_CHUNK_SIZE, OneDriveServiceError


def parse_metadata(raw) -> dict:
    """Decode the ``metadata`` form field; anything unusable becomes ``{}``."""
    if not raw:
        return {}
    try:
        metadata = json.loads(raw)
    except (TypeError, ValueError) as e:
        current_app.logger.warning("⚠️ Error parsing upload metadata: %s", e)
        return {}
    if not isinstance(metadata, dict):
        current_app.logger.warning("⚠️ Upload metadata is not an object; ignoring it")
        return {}
    return metadata


def attachment_fields(item: dict, original_name: str, size: int, mimetype: str) -> dict:
    created = item.get("createdDateTime")
    return {
        "file_id": item["id"],
        "original_name": original_name,
        "filename": item.get("name") or original_name,
        "web_url": item.get("webUrl"),
        "download_url": item.get("@microsoft.graph.downloadUrl"),
        "size": size,
        "mimetype": mimetype,
        "uploaded_at": parse_datetime(created) if created else None,
    }


def upload_files(svc, files) -> list:
    """
    Push ``files`` to OneDrive one after another.
    A failure stops the batch; blobs uploaded before it are left in place.
    """
    uploaded = []
    for i, storage in enumerate(files, start=1):
        original_name = storage.filename
        mimetype = storage.mimetype or "application/octet-stream"
        content = storage.read()
        current_app.logger.info("⬆️ Uploading file %d/%d: %s", i, len(files), original_name)
        try:
            item = svc.upload_file(
                filename=secure_filename(original_name) or "upload",
                content=content,
                content_type=mimetype
            )
        except OneDriveServiceError as e:
            orphaned = [f["file_id"] for f in uploaded]
            if orphaned:
                current_app.logger.error("❌ Upload aborted; orphaned drive items: %s", orphaned)
            raise OneDriveServiceError(
                f"Upload failed after {len(uploaded)} of {len(files)} file(s): {e.message}"
            )
        current_app.logger.debug("File uploaded to OneDrive with ID: %s", item.get("id"))
        uploaded.append(attachment_fields(item, original_name, len(content), mimetype))
    return uploaded


def delete_blobs(svc, file_ids) -> int:
    """Best-effort removal of drive items; returns how many were deleted."""
    deleted = 0
    for file_id in file_ids:
        try:
            svc.delete_file(file_id)
            deleted += 1
        except OneDriveServiceError as e:
            current_app.logger.warning("⚠️ Error deleting file %s from OneDrive: %s", file_id, e)
    return deleted


def content_disposition(filename: str) -> str:
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    fallback = fallback.replace("\\", "").replace('"', "") or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def stream_attachment(svc, attachment) -> Response:
    upstream = svc.open_file_stream(attachment.file_id)

    def generate():
        try:
            for chunk in upstream.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                if chunk:
                    yield chunk
        finally:
            upstream.close()

    resp = Response(stream_with_context(generate()), content_type=attachment.mimetype)
    resp.headers["Content-Disposition"] = content_disposition(attachment.original_name)
    return resp
