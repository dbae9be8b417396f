"""HTTP routes for scan jobs and file actions."""

import asyncio
import json
import logging
import queue
import threading
import uuid
from dataclasses import fields

from flask import Blueprint, Response, current_app, jsonify, request

from bookcheck.actions import (
    DEFAULT_REENCODE_BITRATE_KBPS,
    ActionError,
    delete_file,
    move_file,
    reencode_file,
)
from bookcheck.config import ScanConfig, config_from_dict
from bookcheck.engine import Scanner
from bookcheck.models import FileCompleted

_LOG = logging.getLogger(__name__)

bp = Blueprint("api", __name__)

# Scan settings a request may change. Everything else, tool paths included,
# comes from the server's ScanConfig.
REQUEST_CONFIG_FIELDS = frozenset({
    "silence_threshold_db",
    "silence_min_duration",
    "detect_chapter_silence",
    "mode",
    "sample_segments",
    "concurrency",
})
_SERVER_ONLY_FIELDS = frozenset(f.name for f in fields(ScanConfig)) - REQUEST_CONFIG_FIELDS

# Finished jobs kept for status queries; older ones are dropped first.
MAX_FINISHED_JOBS = 50

# In-memory job store: job_id -> job dict
_jobs: dict[str, dict] = {}
_jobs_lock = threading.Lock()


def _prune_finished_jobs() -> None:
    finished = [job_id for job_id, job in _jobs.items() if job["status"] != "running"]
    for job_id in finished[:max(len(finished) - MAX_FINISHED_JOBS, 0)]:
        del _jobs[job_id]


def _run_job(job: dict) -> None:
    loop = job["loop"]
    try:
        loop.run_until_complete(job["task"])
        job["status"] = "done"
    except asyncio.CancelledError:
        job["status"] = "cancelled"
    except Exception as e:
        _LOG.exception("scan job %s failed", job["id"])
        job["status"] = "error"
        job["error"] = str(e)
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        job["progress_queue"].put(None)  # sentinel


@bp.route("/api/health")
def health():
    scanner = Scanner(current_app.config["SCAN_CONFIG"])
    available = asyncio.run(scanner.probe_availability())
    version = asyncio.run(scanner.tool_version()) if available else None
    return jsonify({"available": available, "version": version})


@bp.route("/api/scans", methods=["POST"])
def start_scan():
    body = request.get_json(silent=True) or {}
    paths = body.get("paths")
    if not paths or not isinstance(paths, list):
        return jsonify({"error": "No paths provided"}), 400

    overrides = body.get("config") or {}
    if not isinstance(overrides, dict):
        return jsonify({"error": "config must be a JSON object"}), 400
    locked = sorted(set(overrides) & _SERVER_ONLY_FIELDS)
    if locked:
        return jsonify({"error": f"Cannot be set per request: {', '.join(locked)}"}), 400

    try:
        config = config_from_dict(overrides, current_app.config["SCAN_CONFIG"])
        concurrency = int(body.get("concurrency", config.concurrency))
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    scanner = Scanner(config)
    job_id = uuid.uuid4().hex[:12]
    progress_queue: queue.Queue = queue.Queue()
    job = {
        "id": job_id,
        "status": "running",
        "total": len(paths),
        "results": [],
        "error": None,
        "progress_queue": progress_queue,
    }

    async def consume() -> None:
        async for event in scanner.scan_many(paths, concurrency=concurrency):
            if isinstance(event, FileCompleted):
                job["results"].append(event.verdict.to_dict())
            progress_queue.put(event.to_dict())

    loop = asyncio.new_event_loop()
    job["loop"] = loop
    job["task"] = loop.create_task(consume())
    with _jobs_lock:
        _prune_finished_jobs()
        _jobs[job_id] = job

    threading.Thread(target=_run_job, args=(job,), daemon=True).start()
    return jsonify({"job_id": job_id, "total": len(paths)})


@bp.route("/api/scans/<job_id>/progress")
def progress_stream(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404

    job = _jobs[job_id]
    q = job["progress_queue"]

    def generate():
        while True:
            try:
                msg = q.get(timeout=120)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            if msg is None:
                if job["status"] == "error":
                    data = json.dumps({"error": job["error"]})
                else:
                    data = json.dumps({"type": job["status"], "total": job["total"]})
                yield f"data: {data}\n\n"
                break
            yield f"data: {json.dumps(msg)}\n\n"

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/scans/<job_id>")
def job_status(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404

    job = _jobs[job_id]
    resp = {
        "status": job["status"],
        "total": job["total"],
        "completed": len(job["results"]),
        "results": job["results"],
    }
    if job["status"] == "error":
        resp["error"] = job["error"]
    return jsonify(resp)


@bp.route("/api/scans/<job_id>/cancel", methods=["POST"])
def cancel_scan(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404

    job = _jobs[job_id]
    if job["status"] != "running":
        return jsonify({"error": f"Job is already {job['status']}"}), 409

    try:
        job["loop"].call_soon_threadsafe(job["task"].cancel)
    except RuntimeError:
        # Loop already closed: the job finished in the meantime.
        return jsonify({"error": f"Job is already {job['status']}"}), 409
    return jsonify({"status": "cancelling"})


@bp.route("/api/files/reencode", methods=["POST"])
def reencode():
    body = request.get_json(silent=True) or {}
    path = body.get("path")
    if not path:
        return jsonify({"error": "No path provided"}), 400
    try:
        bitrate = int(body.get("bitrate", DEFAULT_REENCODE_BITRATE_KBPS))
    except (TypeError, ValueError):
        return jsonify({"error": "bitrate must be an integer"}), 400

    tools = current_app.config["SCAN_CONFIG"].tools()
    try:
        output = asyncio.run(reencode_file(tools, path, body.get("output_dir"), bitrate))
    except ActionError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"output_path": str(output)})


@bp.route("/api/files/delete", methods=["POST"])
def delete():
    body = request.get_json(silent=True) or {}
    path = body.get("path")
    if not path:
        return jsonify({"error": "No path provided"}), 400
    if body.get("confirmed") is not True:
        return jsonify({"error": "Deletion must be confirmed"}), 400

    try:
        delete_file(path, confirmed=True)
    except ActionError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"deleted": path})


@bp.route("/api/files/move", methods=["POST"])
def move():
    body = request.get_json(silent=True) or {}
    path = body.get("path")
    dest_dir = body.get("dest_dir")
    if not path or not dest_dir:
        return jsonify({"error": "path and dest_dir are required"}), 400
    if body.get("confirmed") is not True:
        return jsonify({"error": "Move must be confirmed"}), 400

    try:
        dest = move_file(path, dest_dir, confirmed=True)
    except ActionError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"path": str(dest)})
