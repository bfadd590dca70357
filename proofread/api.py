"""Flask blueprint implementing the proofreading APIs."""

from __future__ import annotations

import logging

from flask import Blueprint, Response, current_app, jsonify, request

from . import jobs
from .documents import DocumentService
from .errors import (
    DocumentBusyError,
    DocumentNotFoundError,
    ExtractionError,
    InvalidTransitionError,
    PersistenceError,
    ProofreadError,
    RollbackError,
)
from .export import download_name, history_to_csv, history_to_xlsx, to_docx, to_txt

logger = logging.getLogger(__name__)

proofread_bp = Blueprint("proofread", __name__, url_prefix="/api")

DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _service() -> DocumentService:
    return current_app.extensions["proofread"]


def _attachment(data: bytes, mimetype: str, filename: str) -> Response:
    return Response(
        data,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@proofread_bp.errorhandler(ProofreadError)
def handle_proofread_error(exc: ProofreadError):
    if isinstance(exc, DocumentNotFoundError):
        code = 404
    elif isinstance(exc, (DocumentBusyError, InvalidTransitionError)):
        code = 409
    elif isinstance(exc, (ExtractionError, RollbackError)):
        code = 400
    elif isinstance(exc, PersistenceError):
        code = 503
    else:
        code = 500
    logger.warning("%s: %s", exc.__class__.__name__, exc)
    return jsonify({"error": str(exc)}), code


@proofread_bp.route("/health")
def health():
    return jsonify({"status": "ok"})


@proofread_bp.route("/files", methods=["POST"])
def upload_file():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400
    file = request.files["file"]
    if not file.filename:
        return jsonify({"error": "No file selected"}), 400

    document = _service().register_upload(file.filename, file.read())
    return jsonify({"success": True, **jobs.status_payload(document)}), 201


@proofread_bp.route("/files")
def list_files():
    documents = _service().store.list_documents()
    return jsonify(
        [{"file_name": document.file_name, **jobs.status_payload(document)} for document in documents]
    )


@proofread_bp.route("/files/<document_id>/versions")
def list_versions(document_id: str):
    return jsonify(_service().list_versions(document_id))


@proofread_bp.route("/files/<document_id>/versions/export")
def export_versions(document_id: str):
    service = _service()
    document = service.store.require_document(document_id)
    entries = service.store.get_log_entries(document_id)
    fmt = request.args.get("format", "csv").lower()
    if fmt == "xlsx":
        return _attachment(history_to_xlsx(entries), XLSX_MIMETYPE, download_name(document.file_name, "xlsx"))
    if fmt == "csv":
        return _attachment(history_to_csv(entries), "text/csv", download_name(document.file_name, "csv"))
    return jsonify({"error": f"Unsupported export format: {fmt}"}), 400


@proofread_bp.route("/files/<document_id>/rollback", methods=["POST"])
def rollback(document_id: str):
    payload = request.get_json(silent=True) or {}
    rollback_type = payload.get("rollback_type")
    if not rollback_type:
        return jsonify({"error": "Missing rollback_type."}), 400
    document = _service().rollback(document_id, rollback_type)
    return jsonify({"message": "Rollback successful.", **jobs.status_payload(document)})


@proofread_bp.route("/proofreading/<document_id>/process", methods=["POST"])
def process(document_id: str):
    document = _service().request_correction(document_id)
    return jsonify({"success": True, **jobs.status_payload(document)}), 202


@proofread_bp.route("/proofreading/<document_id>/cancel", methods=["POST"])
def cancel(document_id: str):
    document = _service().request_cancellation(document_id)
    return jsonify({"message": "Cancellation requested successfully.", **jobs.status_payload(document)})


@proofread_bp.route("/proofreading/<document_id>/status")
def status(document_id: str):
    return jsonify(_service().get_status(document_id))


@proofread_bp.route("/proofreading/<document_id>/details")
def details(document_id: str):
    return jsonify(_service().get_details(document_id))


@proofread_bp.route("/proofreading/<document_id>/download")
def download(document_id: str):
    document = _service().store.require_document(document_id)
    fmt = request.args.get("format", "docx").lower()
    if fmt == "docx":
        return _attachment(to_docx(document.current_text), DOCX_MIMETYPE, download_name(document.file_name, "docx"))
    if fmt == "txt":
        return _attachment(to_txt(document.current_text), "text/plain", download_name(document.file_name, "txt"))
    return jsonify({"error": f"Unsupported download format: {fmt}"}), 400
