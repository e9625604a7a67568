"""
web_server.py — HTTP API and image proxy.

Runs as an aiohttp web server in the same asyncio event loop as the
(optional) Telegram bot.

Endpoints:
  GET  /health                     → plain-text health check
  GET  /api/stores                 → supported stores + their CSV id column
  GET  /api/search?store=&q=       → one product-photo lookup (JSON)
  GET  /api/image-proxy?url=       → fetch an https image server-side
  POST /api/batch                  → start a CSV batch (multipart: store, file)
  GET  /api/batch/{job_id}         → batch progress (JSON)
  GET  /api/batch/{job_id}/download → finished zip

Batch jobs live in memory only; a restart forgets them. Finished jobs and
their zips are dropped BATCH_JOB_TTL seconds after they end.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional

import aiohttp
from aiohttp import web

import batch
import config
import image_proxy
import image_search
from batch import BatchResult, ProcessingStatus
from retailers import RETAILERS, UnknownRetailerError, get_retailer
from search_backends.base import SearchConfigError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


# ── Batch jobs ─────────────────────────────────────────────────────────────────

@dataclass
class BatchJob:
    job_id: str
    store: str
    filename: str
    status: ProcessingStatus = field(default_factory=ProcessingStatus)
    result: Optional[BatchResult] = None
    task: Optional[asyncio.Task] = None
    finished_at: Optional[float] = None     # time.monotonic() when the run ended

    def to_dict(self) -> dict:
        return {
            "job_id":   self.job_id,
            "store":    self.store,
            "filename": self.filename,
            "status":   self.status.to_dict(),
            "download": (
                f"/api/batch/{self.job_id}/download"
                if self.result is not None and self.result.archive is not None
                else None
            ),
        }


_jobs: dict[str, BatchJob] = {}


async def _run_job(job: BatchJob, csv_data: bytes) -> None:
    try:
        job.result = await batch.run_batch(job.store, csv_data, status=job.status)
    finally:
        job.finished_at = time.monotonic()


def _evict_expired() -> None:
    """Forget finished jobs (and their zips) older than BATCH_JOB_TTL seconds."""
    now = time.monotonic()
    expired = [
        job_id for job_id, job in _jobs.items()
        if job.finished_at is not None and now - job.finished_at > config.BATCH_JOB_TTL
    ]
    for job_id in expired:
        del _jobs[job_id]
    if expired:
        logger.info("Evicted %d expired batch job(s)", len(expired))


# ── Request handlers ───────────────────────────────────────────────────────────

def _json_error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def handle_health(request: web.Request) -> web.Response:
    """Health check, returns 200 OK. Use with uptime monitors."""
    _evict_expired()
    return web.Response(text=f"OK ({len(_jobs)} batch jobs)", content_type="text/plain")


async def handle_stores(request: web.Request) -> web.Response:
    return web.json_response([
        {"tag": p.tag, "label": p.label, "id_column": p.id_column}
        for p in RETAILERS.values()
    ])


async def handle_search(request: web.Request) -> web.Response:
    store = request.query.get("store") or config.DEFAULT_STORE
    term  = request.query.get("q", "")
    try:
        outcome = await image_search.find_product_image(store, term)
    except ValueError as exc:        # blank term, UnknownRetailerError
        return _json_error(400, str(exc))
    except SearchConfigError as exc:
        logger.error("Search requested but not configured: %s", exc)
        return _json_error(503, str(exc))

    code = 502 if outcome.state is image_search.SearchState.ERRORED else 200
    return web.json_response(outcome.to_dict(), status=code)


async def handle_image_proxy(request: web.Request) -> web.StreamResponse:
    """
    Stream an https image back with the origin's Content-Type.
    Once the first byte is sent the status can't change, so an upstream
    failure mid-body just ends the response early.
    """
    target = request.query.get("url")
    try:
        image_proxy.validate_target(target)
    except ValueError as exc:
        return _json_error(400, str(exc))

    response: Optional[web.StreamResponse] = None
    try:
        async with image_proxy.open_image(target) as upstream:
            response = web.StreamResponse(headers={
                "Content-Type":  image_proxy.content_type_of(upstream),
                "Cache-Control": image_proxy.CACHE_CONTROL,
            })
            await response.prepare(request)
            try:
                async for chunk in upstream.content.iter_chunked(CHUNK_SIZE):
                    await response.write(chunk)
            except ConnectionResetError:
                logger.info("Client went away while proxying %s", target)
                return response
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logger.warning("Upstream body for %s cut short: %s", target, exc)
                return response
            await response.write_eof()
    except image_proxy.ImageFetchError as exc:
        logger.error("Image proxy error: %s", exc)
        if response is not None and response.prepared:
            return response
        return _json_error(500, "Failed to fetch image")
    return response


async def handle_batch_start(request: web.Request) -> web.Response:
    if not request.content_type.startswith("multipart/"):
        return _json_error(400, "Upload the CSV as multipart/form-data with 'store' and 'file'")

    form  = await request.post()
    store = str(form.get("store") or config.DEFAULT_STORE)
    upload = form.get("file")
    if not isinstance(upload, web.FileField):
        return _json_error(400, "Missing CSV file")

    try:
        profile = get_retailer(store)
    except UnknownRetailerError as exc:
        return _json_error(400, str(exc))

    _evict_expired()
    csv_data = upload.file.read()
    job = BatchJob(job_id=secrets.token_urlsafe(8), store=profile.tag, filename=upload.filename or "")
    _jobs[job.job_id] = job
    job.task = asyncio.create_task(_run_job(job, csv_data))
    logger.info("Batch %s started for %s (%s, %d bytes)", job.job_id, profile.tag, job.filename, len(csv_data))
    return web.json_response(job.to_dict(), status=202)


def _get_job(request: web.Request) -> BatchJob:
    _evict_expired()
    job = _jobs.get(request.match_info["job_id"])
    if job is None:
        raise web.HTTPNotFound(text="Batch job not found.", content_type="text/plain")
    return job


async def handle_batch_status(request: web.Request) -> web.Response:
    return web.json_response(_get_job(request).to_dict())


async def handle_batch_download(request: web.Request) -> web.Response:
    job = _get_job(request)
    if job.result is None or job.result.archive is None:
        return _json_error(409, f"Batch is not complete ({job.status.state.value})")
    return web.Response(
        body=job.result.archive,
        content_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{job.result.archive_name}"'},
    )


# ── App factory ────────────────────────────────────────────────────────────────

def build_web_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/health",                          handle_health)
    app.router.add_get("/api/stores",                      handle_stores)
    app.router.add_get("/api/search",                      handle_search)
    app.router.add_get(config.PROXY_PATH,                  handle_image_proxy)
    app.router.add_post("/api/batch",                      handle_batch_start)
    app.router.add_get("/api/batch/{job_id}",              handle_batch_status)
    app.router.add_get("/api/batch/{job_id}/download",     handle_batch_download)
    return app


async def start_web_server() -> web.AppRunner:
    """Start the web server. Returns runner so caller can shut it down cleanly."""
    app    = build_web_app()
    runner = web.AppRunner(app, access_log=logger)
    await runner.setup()
    site = web.TCPSite(runner, config.WEB_HOST, config.WEB_PORT)
    await site.start()
    logger.info(
        "🌐 Web server listening on %s:%d  (search: %s)",
        config.WEB_HOST,
        config.WEB_PORT,
        await image_search.backend_name(),
    )
    return runner
