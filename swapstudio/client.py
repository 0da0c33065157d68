"""
LightX face-swap client.

One job runs in three phases:
  1. both images are acquired, validated and uploaded through a signed URL
     (source and target concurrently)
  2. a swap job is submitted with the two hosted image URLs
  3. the order status is polled until the job is active or failed

Only the status poll is retried; everything before it is single-attempt.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import httpx

from swapstudio.config import settings
from swapstudio.errors import (
    AccessDeniedError,
    AuthenticationError,
    BillingError,
    ConfigurationError,
    FaceSwapError,
    ImageFetchError,
    ImageValidationError,
    InsufficientCreditsError,
    InvalidFacesError,
    InvalidResponseError,
    PollingExhaustedError,
    ProcessingFailedError,
    RateLimitError,
    RequestTimeoutError,
    UploadError,
    UpstreamError,
)
from swapstudio.images import (
    USER_AGENT,
    ImagePayload,
    ImageSource,
    acquire_image,
    as_source,
    validate_image,
)
from swapstudio.logging_config import safe_preview

log = logging.getLogger("swapstudio.client")

SUCCESS_CODE = 2000
MIN_API_KEY_LENGTH = 16
CONNECTION_TEST_TIMEOUT = 10.0


@dataclass(frozen=True)
class BackoffPolicy:
    factor: float
    cap: float

    def delay(self, base: float, attempt: int) -> float:
        return min(base * self.factor ** attempt, self.cap)


# non-2xx answers from the status endpoint
STATUS_ERROR_BACKOFF = BackoffPolicy(factor=1.5, cap=10.0)
# any other error raised inside a poll attempt
RETRY_BACKOFF = BackoffPolicy(factor=1.2, cap=8.0)


class JobStatus(str, Enum):
    INIT = "init"
    ACTIVE = "active"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "JobStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class UploadTicket:
    upload_url: str
    image_url: str
    declared_size: int


@dataclass
class SwapJob:
    order_id: str
    source_image_url: str
    target_image_url: str
    status: JobStatus = JobStatus.INIT


@dataclass
class ClientStats:
    total_requests: int = 0
    successful_swaps: int = 0
    failed_swaps: int = 0
    average_processing_time_ms: float = 0.0

    def record_success(self, elapsed_ms: float):
        self.successful_swaps += 1
        n = self.successful_swaps
        self.average_processing_time_ms = (self.average_processing_time_ms * (n - 1) + elapsed_ms) / n

    def reset(self):
        self.total_requests = 0
        self.successful_swaps = 0
        self.failed_swaps = 0
        self.average_processing_time_ms = 0.0

    def as_dict(self) -> Dict[str, Any]:
        rate = (self.successful_swaps / self.total_requests * 100) if self.total_requests else 0.0
        return {
            "total_requests": self.total_requests,
            "successful_swaps": self.successful_swaps,
            "failed_swaps": self.failed_swaps,
            "average_processing_time_ms": self.average_processing_time_ms,
            "success_rate": f"{rate:.2f}%",
            "average_processing_time_formatted": f"{round(self.average_processing_time_ms)}ms",
        }


class FaceSwapClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        poll_interval: Optional[float] = None,
        strict_signatures: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.LIGHTX_API_KEY if api_key is None else api_key
        self.base_url = (settings.LIGHTX_BASE_URL if base_url is None else base_url).rstrip("/")
        self.timeout = settings.FACESWAP_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_retries = settings.FACESWAP_MAX_RETRIES if max_retries is None else max_retries
        self.poll_interval = settings.FACESWAP_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.strict_signatures = (
            settings.FACESWAP_STRICT_SIGNATURES if strict_signatures is None else strict_signatures
        )
        # tests swap in httpx.MockTransport here
        self.transport = transport
        self.stats = ClientStats()

        log.info(
            "FaceSwap client config: api_key_set=%s base_url=%s max_retries=%d poll_interval=%.1fs timeout=%.1fs",
            bool(self.api_key),
            self.base_url or "(not configured)",
            self.max_retries,
            self.poll_interval,
            self.timeout,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "User-Agent": USER_AGENT,
        }

    async def _post(self, path: str, payload: dict, label: str, timeout: Optional[float] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=timeout or self.timeout, transport=self.transport) as client:
                resp = await client.post(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{label} timed out. Please check your connection and try again.") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"{label} failed: {e}") from e
        log.debug("POST %s -> %s", url, resp.status_code)
        return resp

    @staticmethod
    def _json(resp: httpx.Response, label: str) -> dict:
        try:
            data = resp.json()
        except ValueError as e:
            raise InvalidResponseError(f"{label}: non-JSON response {safe_preview(resp.text, 300)}") from e
        if not isinstance(data, dict):
            raise InvalidResponseError(f"{label}: unexpected response {safe_preview(data, 300)}")
        return data

    @staticmethod
    def _body(data: dict, label: str) -> dict:
        body = data.get("body")
        if body is None:
            return {}
        if not isinstance(body, dict):
            raise InvalidResponseError(f"{label}: unexpected body {safe_preview(body, 300)}")
        return body

    # ------------------------------------------------------------------
    # Upload negotiation
    # ------------------------------------------------------------------

    async def get_upload_url(self, payload: ImagePayload) -> UploadTicket:
        log.info("Getting upload URL for %s, size=%d bytes", payload.content_type, payload.size)
        resp = await self._post(
            "/v2/uploadImageUrl",
            {"uploadType": "imageUrl", "size": payload.size, "contentType": payload.content_type},
            "Upload URL request",
        )

        if not resp.is_success:
            body = resp.text
            log.error("Upload URL request failed status=%s body=%s", resp.status_code, safe_preview(body))
            if resp.status_code == 403:
                raise AuthenticationError(
                    "API authentication failed (403). Verify the API key has Face Swap permissions "
                    f"and the account has sufficient credits. Response: {safe_preview(body, 300)}"
                )
            if resp.status_code == 429:
                raise RateLimitError(
                    f"Rate limit exceeded (429). Please wait before making additional requests. "
                    f"Response: {safe_preview(body, 300)}"
                )
            if resp.status_code == 402:
                raise BillingError(
                    f"Payment required (402). Please check the account balance and billing status. "
                    f"Response: {safe_preview(body, 300)}"
                )
            raise UpstreamError(
                f"Failed to get upload URL: {resp.status_code} - {safe_preview(body, 300)}",
                status_code=resp.status_code,
                body=body,
            )

        data = self._json(resp, "Upload URL request")
        body = self._body(data, "Upload URL request")
        if data.get("statusCode") != SUCCESS_CODE or not body.get("uploadImage") or not body.get("imageUrl"):
            raise InvalidResponseError(f"Invalid upload URL response: {safe_preview(data, 500)}")

        return UploadTicket(
            upload_url=body["uploadImage"],
            image_url=body["imageUrl"],
            declared_size=body.get("size") or payload.size,
        )

    async def upload_image(self, ticket: UploadTicket, payload: ImagePayload):
        log.info("Uploading image to signed URL, size=%d bytes", payload.size)
        started = time.monotonic()
        headers = {
            "Content-Type": payload.content_type,
            "Content-Length": str(payload.size),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.put(ticket.upload_url, content=payload.data, headers=headers)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                "Image upload timed out. Try a smaller image or check your connection."
            ) from e
        except httpx.HTTPError as e:
            raise UploadError(f"Failed to upload image: {e}") from e

        if not resp.is_success:
            raise UploadError(f"Image upload failed: {resp.status_code} - {resp.reason_phrase}")
        log.info("Image uploaded in %d ms", (time.monotonic() - started) * 1000)

    async def negotiate_upload(self, payload: ImagePayload) -> str:
        """Validate a payload and make it reachable by the swap service; returns its image URL."""
        validation = validate_image(payload.data, payload.content_type, self.strict_signatures)
        if not validation.is_valid:
            raise ImageValidationError(validation.errors)

        ticket = await self.get_upload_url(payload)
        await self.upload_image(ticket, payload)
        return ticket.image_url

    async def process_image(self, source: ImageSource) -> str:
        started = time.monotonic()
        try:
            payload = await acquire_image(source, timeout=self.timeout, transport=self.transport)
            image_url = await self.negotiate_upload(payload)
        except FaceSwapError as e:
            log.error("Process image failed source=%s: %s", source, e)
            raise
        log.info("Image processed in %d ms", (time.monotonic() - started) * 1000)
        return image_url

    # ------------------------------------------------------------------
    # Job submission and polling
    # ------------------------------------------------------------------

    async def request_face_swap(self, source_image_url: str, target_image_url: str) -> SwapJob:
        log.info("Requesting face swap source=%s target=%s", source_image_url, target_image_url)
        self.stats.total_requests += 1
        try:
            job = await self._submit(source_image_url, target_image_url)
        except FaceSwapError as e:
            self.stats.failed_swaps += 1
            log.error("Face swap request failed: %s", e)
            raise
        log.info("Face swap initiated order_id=%s", job.order_id)
        return job

    async def _submit(self, source_image_url: str, target_image_url: str) -> SwapJob:
        resp = await self._post(
            "/v1/face-swap",
            {"imageUrl": source_image_url, "styleImageUrl": target_image_url},
            "Face swap request",
        )

        if not resp.is_success:
            body = resp.text
            if resp.status_code == 403:
                raise AccessDeniedError(
                    "Face Swap API access denied (403). Check the subscription plan and that Face Swap "
                    f"is enabled for the account. Response: {safe_preview(body, 300)}"
                )
            if resp.status_code == 402:
                raise InsufficientCreditsError(
                    f"Insufficient credits (402). Please add credits to the account. "
                    f"Response: {safe_preview(body, 300)}"
                )
            if resp.status_code == 400:
                raise InvalidFacesError(
                    "Invalid request (400). Please check that both images contain clear, visible faces."
                )
            raise UpstreamError(
                f"Face swap request failed: {resp.status_code} - {safe_preview(body, 300)}",
                status_code=resp.status_code,
                body=body,
            )

        data = self._json(resp, "Face swap request")
        order_id = self._body(data, "Face swap request").get("orderId")
        if data.get("statusCode") != SUCCESS_CODE or not order_id:
            raise InvalidResponseError(f"Face swap failed: {safe_preview(data, 500)}")

        return SwapJob(order_id=order_id, source_image_url=source_image_url, target_image_url=target_image_url)

    async def poll_status(self, job: SwapJob) -> str:
        """Poll until the job is active (returns the output URL) or terminally fails."""
        started = time.monotonic()
        try:
            output = await self._poll(job)
        except FaceSwapError:
            self.stats.failed_swaps += 1
            raise

        elapsed_ms = (time.monotonic() - started) * 1000
        self.stats.record_success(elapsed_ms)
        log.info("Face swap completed in %d ms output=%s", elapsed_ms, output)
        return output

    async def _poll(self, job: SwapJob) -> str:
        log.info("Polling face swap status order_id=%s", job.order_id)

        for attempt in range(1, self.max_retries + 1):
            last = attempt == self.max_retries
            try:
                log.info("Status check attempt %d/%d", attempt, self.max_retries)
                resp = await self._post("/v1/order-status", {"orderId": job.order_id}, "Status check")

                if not resp.is_success:
                    log.warning("Status check failed: %s - %s", resp.status_code, safe_preview(resp.text, 300))
                    if last:
                        raise PollingExhaustedError(f"Status polling failed after {self.max_retries} attempts")
                    await asyncio.sleep(STATUS_ERROR_BACKOFF.delay(self.poll_interval, attempt))
                    continue

                data = self._json(resp, "Status check")
                if data.get("statusCode") != SUCCESS_CODE:
                    raise InvalidResponseError(f"Status check error: {data.get('message') or 'Unknown error'}")

                body = self._body(data, "Status check")
                job.status = JobStatus.parse(body.get("status"))
                output = body.get("output")

                if job.status is JobStatus.ACTIVE and output:
                    return output
                if job.status is JobStatus.FAILED:
                    raise ProcessingFailedError(
                        "Face swap failed during processing. This may be due to unclear faces "
                        "or incompatible images."
                    )

                log.info("Status: %s, waiting...", body.get("status"))
                if not last:
                    await asyncio.sleep(self.poll_interval)

            except (ProcessingFailedError, PollingExhaustedError):
                raise
            except FaceSwapError as e:
                log.warning("Status check attempt %d failed: %s", attempt, e)
                if last:
                    raise
                await asyncio.sleep(RETRY_BACKOFF.delay(self.poll_interval, attempt))

        raise PollingExhaustedError(
            f"Face swap did not complete within {self.max_retries} attempts "
            f"({self.max_retries * self.poll_interval:g} seconds)"
        )

    async def perform_face_swap(
        self,
        source: Union[ImageSource, str],
        target: Union[ImageSource, str],
        source_is_url: bool = False,
        target_is_url: bool = False,
    ) -> str:
        """
        Run a whole job and return the swapped image URL.

        Plain strings are tagged with the *_is_url flags; ImageSource values
        are used as given.
        """
        if isinstance(source, str):
            source = as_source(source, source_is_url)
        if isinstance(target, str):
            target = as_source(target, target_is_url)

        started = time.monotonic()
        log.info(
            "Starting face swap. stats total=%d success=%d failed=%d",
            self.stats.total_requests,
            self.stats.successful_swaps,
            self.stats.failed_swaps,
        )
        try:
            # first failure propagates at once; the sibling upload is left to finish
            source_url, target_url = await asyncio.gather(
                self.process_image(source),
                self.process_image(target),
            )
            job = await self.request_face_swap(source_url, target_url)
            result_url = await self.poll_status(job)
        except FaceSwapError as e:
            log.error("Face swap failed after %d ms: %s", (time.monotonic() - started) * 1000, e)
            raise

        log.info("Face swap process finished in %d ms", (time.monotonic() - started) * 1000)
        return result_url

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def is_configured(self) -> bool:
        if not self.api_key:
            log.warning("LIGHTX_API_KEY is not set")
            return False
        if not self.base_url:
            log.warning("LIGHTX_BASE_URL is not configured")
            return False
        if len(self.api_key) < MIN_API_KEY_LENGTH:
            log.warning("LIGHTX_API_KEY appears to be invalid (too short)")
            return False
        return True

    def ensure_configured(self):
        if not self.is_configured():
            raise ConfigurationError(
                "Face swap service is not properly configured. Please contact support."
            )

    async def test_connection(self) -> bool:
        log.info("Testing face swap API connectivity")
        try:
            resp = await self._post(
                "/v2/uploadImageUrl",
                {"uploadType": "imageUrl", "size": 1000, "contentType": "image/jpeg"},
                "Connectivity test",
                timeout=CONNECTION_TEST_TIMEOUT,
            )
        except FaceSwapError as e:
            log.error("API connectivity test failed: %s", e)
            return False

        if resp.status_code == 200:
            log.info("API is reachable and authentication succeeded")
            return True
        if resp.status_code == 403:
            log.error("API key authentication failed: %s", safe_preview(resp.text, 300))
            return False
        log.warning("Unexpected API response: %s", resp.status_code)
        return False

    def get_stats(self) -> Dict[str, Any]:
        return self.stats.as_dict()

    def reset_stats(self):
        self.stats.reset()
        log.info("Statistics reset")

    async def download_result(self, image_url: str, out_path: str) -> str:
        log.info("Downloading result image url=%s", image_url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(image_url, follow_redirects=True)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Timed out downloading {image_url}") from e
        except httpx.HTTPError as e:
            raise ImageFetchError(f"Failed to download image: {e}") from e

        if not resp.is_success:
            raise ImageFetchError(f"Failed to download image: {resp.status_code} - {resp.reason_phrase}")

        Path(out_path).parent.mkdir(parents=True, exist_ok=True)
        Path(out_path).write_bytes(resp.content)
        log.info("Result image saved to %s", out_path)
        return out_path
