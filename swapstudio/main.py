import re
import time
import uuid
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from swapstudio.client import FaceSwapClient
from swapstudio.config import settings
from swapstudio.errors import FaceSwapError, ImageHostError, ImageValidationError
from swapstudio.hosting import ImageHost
from swapstudio.images import LocalPath
from swapstudio.logging_config import setup_logging
from swapstudio.rate_limit import RateLimiter
from swapstudio.schemas import (
    ApiStatusResponse,
    ClientStatsResponse,
    HealthResponse,
    HostedImage,
    ServiceInfo,
    SubmissionForm,
    SubmissionListResponse,
    SubmissionRecord,
    SubmissionResponse,
)
from swapstudio.storage import SubmissionStore
from swapstudio.utils import check_upload, cleanup_files, ensure_allowed_image, form_errors, save_upload_to_path

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("swapstudio.api")

app = FastAPI(title="Face Swap Studio (LightX face swap)")

DATA = Path(settings.DATA_DIR)
UPLOADS_DIR = DATA / "uploads"
IMAGES_DIR = DATA / "images"
DB_PATH = str(DATA / "submissions.sqlite3")

PAGE_SIZE = 20
SUBMISSION_ID_RE = re.compile(r"^sub_[0-9a-f]{12}$")
IMAGE_TYPES = ("source", "target", "swapped")
STARTED_AT = time.monotonic()

UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
store = SubmissionStore(DB_PATH)
host = ImageHost(str(IMAGES_DIR), f"{settings.BASE_URL.rstrip('/')}/static/images")
faceswap = FaceSwapClient()

app.mount("/static/images", StaticFiles(directory=str(IMAGES_DIR)), name="images")

submit_limiter = RateLimiter(5, 15 * 60)
download_limiter = RateLimiter(20, 15 * 60)
admin_limiter = RateLimiter(10, 15 * 60)

logger.info(
    "Startup config: base_url=%s data_dir=%s lightx_key_set=%s",
    settings.BASE_URL,
    settings.DATA_DIR,
    bool(settings.LIGHTX_API_KEY),
)

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

def _check_submission_id(submission_id: str):
    if not SUBMISSION_ID_RE.match(submission_id):
        raise HTTPException(status_code=400, detail="Invalid submission ID format")

def _get_submission(submission_id: str) -> dict:
    _check_submission_id(submission_id)
    record = store.get(submission_id)
    if not record:
        raise HTTPException(status_code=404, detail="Submission not found")
    return record

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    req_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:10]}"
    request.state.request_id = req_id
    resp = await call_next(request)
    resp.headers["x-request-id"] = req_id
    return resp

@app.exception_handler(FaceSwapError)
async def face_swap_error_handler(request: Request, exc: FaceSwapError):
    req_id = getattr(request.state, "request_id", "req_unknown")
    if exc.expose:
        logger.warning("[%s] Face swap rejected (%s): %s", req_id, type(exc).__name__, exc)
    else:
        logger.error("[%s] Face swap failed (%s): %s", req_id, type(exc).__name__, exc)

    content = {"detail": exc.public_message, "error": type(exc).__name__}
    if isinstance(exc, ImageValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.http_status, content=content)

@app.get("/", response_model=ServiceInfo)
def index():
    return ServiceInfo(
        service=app.title,
        api_configured=faceswap.is_configured(),
        routes={
            "submit": "POST /submit",
            "submissions": "GET /submissions",
            "submission": "GET /submissions/{id}",
            "download": "GET /download/{id}/{type}",
            "health": "GET /health",
        },
    )

@app.post("/submit", response_model=SubmissionResponse, dependencies=[Depends(submit_limiter)])
async def submit(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    terms: Optional[str] = Form(None),
    source: Optional[UploadFile] = File(None),
    target: Optional[UploadFile] = File(None),
):
    req_id = getattr(request.state, "request_id", "req_unknown")

    try:
        form = SubmissionForm(name=name, email=email, phone=phone, terms=terms)
    except ValidationError as ve:
        errors = form_errors(ve)
        logger.info("[%s] Input validation failed: %s", req_id, errors)
        raise HTTPException(status_code=400, detail=", ".join(errors))

    file_errors = check_upload(source, "Source", settings.MAX_UPLOAD_BYTES)
    file_errors += check_upload(target, "Target", settings.MAX_UPLOAD_BYTES)
    if file_errors:
        logger.info("[%s] File validation failed: %s", req_id, file_errors)
        raise HTTPException(status_code=400, detail=", ".join(file_errors))

    faceswap.ensure_configured()

    submission_id = f"sub_{uuid.uuid4().hex[:12]}"
    job_log = logging.getLogger(f"submission.{submission_id}")
    job_dir = UPLOADS_DIR / submission_id
    source_tmp = str(job_dir / f"source{Path(source.filename).suffix.lower()}")
    target_tmp = str(job_dir / f"target{Path(target.filename).suffix.lower()}")
    hosted: List[HostedImage] = []

    try:
        try:
            save_upload_to_path(source, source_tmp)
            save_upload_to_path(target, target_tmp)
            ensure_allowed_image(source_tmp)
            ensure_allowed_image(target_tmp)
        except ValueError as ve:
            job_log.warning("[%s] Image validation failed: %s", req_id, ve)
            raise HTTPException(status_code=400, detail=str(ve))

        stamp = int(time.time() * 1000)
        try:
            source_img = await run_in_threadpool(
                host.upload, source_tmp, "faceswap/source", f"source_{submission_id}_{stamp}"
            )
            hosted.append(source_img)
            target_img = await run_in_threadpool(
                host.upload, target_tmp, "faceswap/target", f"target_{submission_id}_{stamp}"
            )
            hosted.append(target_img)
        except ImageHostError as e:
            job_log.error("[%s] Hosting input images failed: %s", req_id, e)
            raise HTTPException(status_code=500, detail="Image upload failed. Please check your images and try again.")
        job_log.info("[%s] Input images hosted", req_id)

        swapped_url = await faceswap.perform_face_swap(
            LocalPath(str(host.local_path(source_img.public_id))),
            LocalPath(str(host.local_path(target_img.public_id))),
        )
        job_log.info("[%s] Face swap completed result=%s", req_id, swapped_url)

        try:
            swapped_img = await run_in_threadpool(
                host.upload, swapped_url, "faceswap/results", f"result_{submission_id}_{stamp}"
            )
            hosted.append(swapped_img)
        except ImageHostError as e:
            job_log.error("[%s] Hosting result image failed: %s", req_id, e)
            raise HTTPException(status_code=502, detail="Could not retrieve the swapped image. Please try again.")

        await run_in_threadpool(
            store.create,
            submission_id,
            form.model_dump(),
            source_img.model_dump(),
            target_img.model_dump(),
            swapped_img.model_dump(),
        )
        job_log.info("[%s] Submission saved", req_id)

    except Exception:
        for img in hosted:
            try:
                host.delete(img.public_id)
            except ImageHostError as e:
                job_log.warning("[%s] Could not remove hosted image %s: %s", req_id, img.public_id, e)
        raise

    finally:
        cleanup_files([source_tmp, target_tmp])
        try:
            job_dir.rmdir()
        except OSError:
            pass

    return SubmissionResponse(submission_id=submission_id, swapped_image_url=swapped_img.url)

@app.get("/submissions", response_model=SubmissionListResponse)
def list_submissions(page: int = 1):
    page = max(page, 1)
    records = store.list(limit=PAGE_SIZE, skip=(page - 1) * PAGE_SIZE)
    logger.info("Retrieved %d submissions page=%d", len(records), page)
    return SubmissionListResponse(
        submissions=[SubmissionRecord(**r) for r in records],
        stats=store.statistics(),
        page=page,
        has_next_page=len(records) == PAGE_SIZE,
        has_prev_page=page > 1,
    )

@app.get("/submissions/{submission_id}", response_model=SubmissionRecord)
def get_submission(submission_id: str):
    return SubmissionRecord(**_get_submission(submission_id))

@app.get("/download/{submission_id}/{image_type}", dependencies=[Depends(download_limiter)])
def download_image(submission_id: str, image_type: str):
    _check_submission_id(submission_id)
    if image_type not in IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Invalid image type. Use: source, target, or swapped")

    record = _get_submission(submission_id)
    image = record.get(f"{image_type}_image")
    path = host.local_path(image["public_id"]) if image else None
    if not path or not path.exists():
        raise HTTPException(status_code=404, detail=f"{image_type} image not found for this submission")

    safe_name = re.sub(r"[^a-zA-Z0-9]", "_", record["name"])
    return FileResponse(path, media_type="image/jpeg", filename=f"{image_type}_{safe_name}_{submission_id}.jpg")

@app.delete("/admin/submissions/{submission_id}", dependencies=[Depends(admin_limiter)])
def delete_submission(submission_id: str):
    record = _get_submission(submission_id)
    for key in ("source_image", "target_image", "swapped_image"):
        if record.get(key):
            try:
                host.delete(record[key]["public_id"])
            except ImageHostError as e:
                logger.warning("Could not remove hosted image for %s: %s", submission_id, e)

    if not store.delete(submission_id):
        raise HTTPException(status_code=404, detail="Submission not found")
    logger.info("Deleted submission %s", submission_id)
    return {"message": "Submission deleted successfully", "timestamp": _now()}

@app.get("/admin/status")
async def api_status():
    return {
        "lightx": {
            "configured": faceswap.is_configured(),
            "connected": await faceswap.test_connection(),
        },
        "database": {"connected": True, "submissions": store.statistics()["total"]},
        "timestamp": _now(),
    }

@app.get("/api-test", response_model=ApiStatusResponse)
async def api_test():
    configured = faceswap.is_configured()
    connected = await faceswap.test_connection()
    return ApiStatusResponse(
        configured=configured,
        connected=connected,
        timestamp=_now(),
        message="API is ready" if configured and connected else "API has issues",
    )

@app.get("/admin/stats", response_model=ClientStatsResponse)
def client_stats():
    return faceswap.get_stats()

@app.post("/admin/stats/reset", response_model=ClientStatsResponse, dependencies=[Depends(admin_limiter)])
def reset_client_stats():
    faceswap.reset_stats()
    return faceswap.get_stats()

@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(
        status="healthy",
        timestamp=_now(),
        uptime_seconds=round(time.monotonic() - STARTED_AT, 3),
        environment=settings.ENVIRONMENT,
    )
