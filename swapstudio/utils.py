import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from PIL import Image
from pydantic import ValidationError

ALLOWED_FORMATS = {"JPEG", "PNG"}
ALLOWED_MIMES = {"image/jpeg", "image/jpg", "image/png"}
ALLOWED_EXTS = {".jpg", ".jpeg", ".png"}

log = logging.getLogger("swapstudio.uploads")

def form_errors(exc: ValidationError) -> List[str]:
    """Flatten a pydantic ValidationError into the validators' own messages."""
    messages = []
    for err in exc.errors():
        ctx_error = (err.get("ctx") or {}).get("error")
        messages.append(str(ctx_error) if ctx_error else f"{err['loc'][-1]}: {err['msg']}")
    return messages

def check_upload(upload, label: str, max_bytes: int) -> List[str]:
    """Cheap checks on an UploadFile before anything is written to disk."""
    if upload is None or not upload.filename:
        return [f"{label} image is required"]

    errors = []
    if upload.size is not None and upload.size > max_bytes:
        errors.append(f"{label} image must be less than {max_bytes // (1024 * 1024)}MB")
    if (upload.content_type or "").lower() not in ALLOWED_MIMES:
        errors.append(f"{label} image must be JPEG, PNG, or JPG format")
    elif Path(upload.filename).suffix.lower() not in ALLOWED_EXTS:
        errors.append(f"{label} image must have a .jpg, .jpeg, or .png extension")
    return errors

def ensure_allowed_image(path: str):
    try:
        with Image.open(path) as img:
            img.verify()
            fmt = (img.format or "").upper()
    except Exception as e:
        raise ValueError(f"Invalid image file: {e}")

    if fmt not in ALLOWED_FORMATS:
        raise ValueError(f"Unsupported image format: {fmt or 'unknown'}. Allowed: {sorted(ALLOWED_FORMATS)}")

def save_upload_to_path(upload_file, out_path: str):
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "wb") as f:
        shutil.copyfileobj(upload_file.file, f)

def cleanup_files(paths: Iterable[Optional[str]]):
    for p in paths:
        if not p:
            continue
        try:
            Path(p).unlink(missing_ok=True)
            log.debug("Cleaned up temp file %s", p)
        except OSError as e:
            log.warning("Failed to clean up temp file %s: %s", p, e)
