"""
Face-swap client errors.

Every error carries the HTTP status the web layer answers with and whether
its message is safe to show to the submitter. Unexposed errors are logged
and replaced by a generic message.
"""

from typing import List, Optional

GENERIC_FAILURE = "Face swap processing failed. Please try again later."


class FaceSwapError(Exception):
    http_status: int = 502
    expose: bool = False

    @property
    def public_message(self) -> str:
        return str(self) if self.expose else GENERIC_FAILURE


class ConfigurationError(FaceSwapError):
    """API key or base URL missing."""
    http_status = 400
    expose = True


# ---- acquisition / validation ----

class ImageValidationError(FaceSwapError):
    http_status = 400
    expose = True

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Image validation failed: {', '.join(self.errors)}")


class ImageNotFoundError(FaceSwapError):
    http_status = 400
    expose = True


class UnsupportedFormatError(FaceSwapError):
    http_status = 400
    expose = True


class ImageFetchError(FaceSwapError):
    """Remote source image could not be downloaded."""


# ---- account / plan ----

class AuthenticationError(FaceSwapError):
    http_status = 503
    expose = True


class BillingError(FaceSwapError):
    http_status = 503
    expose = True


class AccessDeniedError(FaceSwapError):
    http_status = 503
    expose = True


class InsufficientCreditsError(FaceSwapError):
    http_status = 503
    expose = True


class RateLimitError(FaceSwapError):
    http_status = 503
    expose = True


# ---- remote service ----

class InvalidFacesError(FaceSwapError):
    http_status = 422
    expose = True


class UpstreamError(FaceSwapError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class RequestTimeoutError(FaceSwapError):
    http_status = 504


class InvalidResponseError(FaceSwapError):
    pass


class UploadError(FaceSwapError):
    pass


class ProcessingFailedError(FaceSwapError):
    http_status = 422
    expose = True


class PollingExhaustedError(FaceSwapError):
    http_status = 504


# ---- collaborators ----

class ImageHostError(Exception):
    """Hosting an image (or removing it) failed."""
