"""
HTTP Microservice
=================
Flask API for uploading files, running PDF operations as background jobs
and polling their status.

Endpoints:
    POST   /api/upload               → Upload up to 10 files (field "files")
    GET    /api/files/<id>           → File metadata
    GET    /api/files/<id>/download  → File bytes as an attachment
    DELETE /api/files/<id>           → Delete a file
    POST   /api/process              → Start a job, returns 202 + job id
    GET    /api/jobs/<id>            → Job status for polling
    DELETE /api/jobs/<id>            → Forget a job
    GET    /api/tools                → Tool catalog
    GET    /api/health               → Health check
    GET    /api/info                 → Service version info
    GET    /sitemap.xml, /robots.txt → Crawler documents
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Optional, Union

import fitz  # PyMuPDF
from flask import Blueprint, Flask, Response, current_app, jsonify, request, send_file
from flask_cors import CORS
from pydantic import ValidationError
from werkzeug.exceptions import RequestEntityTooLarge

from . import __version__
from .background_worker import JobWorkerPool
from .config import ServiceConfig, setup_logging
from .dispatcher import OperationDispatcher
from .errors import MissingInputFileError, UnknownOperationError
from .job_manager import JobManager
from .models import FileRecord, NewFile, ProcessRequest
from .registry import FileRegistry, JobRegistry
from .storage import (
    ALLOWED_MIME_TYPES,
    FileStorage,
    FileTooLargeError,
    content_disposition,
    guess_mime_type,
)
from .tools import CATEGORIES, TOOLS, find_tool, robots_txt, sitemap_xml

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")
site = Blueprint("site", __name__)


@dataclass
class Services:
    """Per-app service graph, stored in ``app.extensions["pdftools"]``."""
    config: ServiceConfig
    storage: FileStorage
    files: FileRegistry
    jobs: JobRegistry
    dispatcher: OperationDispatcher
    manager: JobManager
    pool: JobWorkerPool


def services() -> Services:
    return current_app.extensions["pdftools"]


def create_app(config: Union[ServiceConfig, dict, None] = None) -> Flask:
    """
    Create and configure the Flask app.

    ``config`` is a ``ServiceConfig`` or a dict of overrides; dict keys that
    are not ``ServiceConfig`` fields go straight into ``app.config``
    (``START_WORKERS=False`` leaves the worker pool stopped).
    """
    extra: dict = {}
    if isinstance(config, ServiceConfig):
        cfg = config
    else:
        known = {f.name for f in fields(ServiceConfig)}
        overrides = {}
        for key, value in (config or {}).items():
            if key.lower() in known:
                overrides[key.lower()] = value
            else:
                extra[key] = value
        cfg = ServiceConfig.from_env(**overrides)

    app = Flask(__name__)
    CORS(app)
    app.config.update(cfg.to_flask())
    app.config.update(extra)

    storage = FileStorage(cfg.upload_dir, cfg.output_dir).init()
    files = FileRegistry(storage)
    jobs = JobRegistry()
    dispatcher = OperationDispatcher(storage)
    manager = JobManager(files, jobs, dispatcher)
    pool = JobWorkerPool(manager.execute, workers=cfg.workers)
    manager.pool = pool
    if app.config.get("START_WORKERS", True):
        pool.start()

    app.extensions["pdftools"] = Services(
        config=cfg,
        storage=storage,
        files=files,
        jobs=jobs,
        dispatcher=dispatcher,
        manager=manager,
        pool=pool,
    )

    app.register_blueprint(api)
    app.register_blueprint(site)

    @app.errorhandler(RequestEntityTooLarge)
    def request_too_large(e):
        limit = app.config["MAX_FILE_SIZE"] // (1024 * 1024)
        return jsonify({"error": f"Upload too large: files are limited to {limit}MB each"}), 413

    return app


# ─── Health Check ─────────────────────────────────────────────────────────────


@api.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    svc = services()
    return jsonify({
        "status": "healthy",
        "service": "pdftools",
        "version": __version__,
        "active_jobs": svc.jobs.count_active(),
        "total_jobs": len(svc.jobs),
        "workers": svc.pool.workers,
        "busy_workers": svc.pool.busy(),
        "queued_jobs": svc.pool.pending(),
    })


@api.route("/info", methods=["GET"])
def info():
    """Service version and capability info."""
    cfg = services().config
    return jsonify({
        "version": __version__,
        "engine": "PyMuPDF",
        "engine_version": fitz.VersionBind,
        "operations": OperationDispatcher.supported_operations(),
        "max_file_size": cfg.max_file_size,
        "max_files": cfg.max_files,
        "allowed_types": sorted(ALLOWED_MIME_TYPES),
    })


@api.route("/tools", methods=["GET"])
def list_tools():
    return jsonify({
        "tools": [tool.to_dict() for tool in TOOLS],
        "categories": CATEGORIES,
    })


@api.route("/tools/<slug>", methods=["GET"])
def get_tool(slug: str):
    """Tool page lookup by URL slug, e.g. ``pdf-to-pdfa``."""
    tool = find_tool(slug)
    if tool is None:
        return jsonify({"error": "Tool not found"}), 404
    return jsonify(tool.to_dict())


# ─── Files ────────────────────────────────────────────────────────────────────


def _upload_mime_type(upload) -> str:
    mime = (upload.mimetype or "").lower()
    if not mime or mime == "application/octet-stream":
        mime = guess_mime_type(upload.filename, default=mime or "application/octet-stream")
    return mime


@api.route("/upload", methods=["POST"])
def upload_files():
    """
    Upload files (multipart field "files").

    All files are checked for type and count before any is stored; a size or
    disk failure part way through removes the files already stored.
    """
    svc = services()
    cfg = svc.config

    uploads = [f for f in request.files.getlist("files") if f and f.filename]
    if not uploads:
        return jsonify({"error": "No files uploaded"}), 400
    if len(uploads) > cfg.max_files:
        return jsonify({
            "error": f"Too many files: at most {cfg.max_files} files per upload"
        }), 400

    typed = []
    for upload in uploads:
        mime = _upload_mime_type(upload)
        if mime not in ALLOWED_MIME_TYPES:
            return jsonify({
                "error": f"File type not allowed: {mime} ({upload.filename})"
            }), 400
        typed.append((upload, mime))

    saved: list[FileRecord] = []
    try:
        for upload, mime in typed:
            stored_name, location, size = svc.storage.save_upload(
                upload.stream, upload.filename, max_size=cfg.max_file_size
            )
            saved.append(svc.files.create(NewFile(
                original_name=upload.filename,
                stored_name=stored_name,
                mime_type=mime,
                size_bytes=size,
                storage_location=location,
                metadata={"fieldName": "files"},
            )))
    except FileTooLargeError as e:
        _rollback(svc, saved)
        return jsonify({"error": str(e)}), 413
    except OSError as e:
        _rollback(svc, saved)
        logger.error(f"Failed to store upload: {e}", exc_info=True)
        return jsonify({"error": "Failed to store uploaded files"}), 500

    logger.info(f"Uploaded {len(saved)} file(s)")
    return jsonify({
        "success": True,
        "files": [record.summary() for record in saved],
    })


def _rollback(svc: Services, saved: list[FileRecord]):
    for record in saved:
        svc.files.delete(record.id)


@api.route("/files/<file_id>", methods=["GET"])
def get_file(file_id: str):
    record = services().files.get(file_id)
    if record is None:
        return jsonify({"error": "File not found"}), 404
    return jsonify(record.to_payload())


@api.route("/files/<file_id>/download", methods=["GET"])
def download_file(file_id: str):
    svc = services()
    record = svc.files.get(file_id)
    if record is None:
        return jsonify({"error": "File not found"}), 404
    if not svc.storage.exists(record.storage_location):
        logger.warning(f"File {file_id} has no bytes at {record.storage_location}")
        return jsonify({"error": "File not found on disk"}), 404

    response = send_file(record.storage_location, mimetype=record.mime_type)
    response.headers["Content-Disposition"] = content_disposition(record.original_name)
    return response


@api.route("/files/<file_id>", methods=["DELETE"])
def delete_file(file_id: str):
    if not services().files.delete(file_id):
        return jsonify({"error": "File not found"}), 404
    return jsonify({"success": True})


# ─── Jobs ─────────────────────────────────────────────────────────────────────


@api.route("/process", methods=["POST"])
def process_files():
    """
    Start a processing job.

    JSON body: {operation, inputFiles: [file ids], parameters?}
    Returns 202 with the job id; poll /api/jobs/<id> for the outcome.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({
            "error": "Request body must be a JSON object",
            "code": "invalid_request",
        }), 400

    try:
        body = ProcessRequest.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        return jsonify({
            "error": f"Invalid request data: {problems}",
            "code": "invalid_request",
        }), 400

    try:
        job = services().manager.create_job(body.operation, body.input_files, body.parameters)
    except UnknownOperationError as e:
        return jsonify({"error": str(e), "code": "unknown_operation"}), 400
    except MissingInputFileError as e:
        return jsonify({"error": str(e), "code": "file_not_found"}), 400

    return jsonify({
        "jobId": job.id,
        "status": job.status.value,
        "progress": job.progress,
    }), 202


@api.route("/jobs/<job_id>", methods=["GET"])
def get_job(job_id: str):
    """Job status for polling."""
    manager = services().manager
    job = manager.get_job(job_id)
    if job is None:
        return jsonify({"error": "Job not found"}), 404
    return jsonify(job.status_payload(manager.output_files(job)))


@api.route("/jobs/<job_id>", methods=["DELETE"])
def delete_job(job_id: str):
    if not services().manager.delete_job(job_id):
        return jsonify({"error": "Job not found"}), 404
    return jsonify({"success": True})


# ─── Crawlers ─────────────────────────────────────────────────────────────────


def _base_url() -> str:
    return services().config.site_url or request.host_url.rstrip("/")


@site.route("/sitemap.xml", methods=["GET"])
def sitemap():
    return Response(sitemap_xml(_base_url()), mimetype="application/xml")


@site.route("/robots.txt", methods=["GET"])
def robots():
    return Response(robots_txt(_base_url()), mimetype="text/plain")


# ─── Run Server ──────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
    config: Optional[ServiceConfig] = None,
):
    """Start the microservice server."""
    cfg = config or ServiceConfig.from_env()
    setup_logging(cfg.log_level, cfg.log_file)
    app = create_app(cfg)
    logger.info(f"Starting server on {host}:{port}")
    # The reloader would start a second worker pool
    app.run(host=host, port=port, debug=debug, use_reloader=False)


if __name__ == "__main__":
    run_server(debug=True)
