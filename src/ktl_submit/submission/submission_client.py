"""Two-phase HTTP client for the KTL labview API.

Phase one uploads every produced artifact in one multipart request, phase two
posts the JSON envelope. Each phase is retried with exponential backoff on
network failures, timeouts and 5xx responses only.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

import httpx

from ..config import SubmissionSettings
from ..domain.models import Artifact, Payload, SubmissionPhase
from .submission_errors import (
    NetworkError,
    RequestTimeoutError,
    ServerError,
    ServiceRejectedError,
    SubmissionError,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class PhaseResult:
    phase: SubmissionPhase
    attempts: int
    status_code: int
    message: str | None = None


@dataclass(slots=True, frozen=True)
class SubmissionOutcome:
    """Result of a completed submission; ``upload`` is ``None`` when skipped."""

    upload: PhaseResult | None
    env: PhaseResult
    uploaded_names: tuple[str, ...] = ()

    @property
    def message(self) -> str | None:
        return self.env.message


class SubmissionClient:
    """Deliver artifacts and the mapped payload to KTL."""

    def __init__(
        self,
        *,
        base_url: str = "https://mobile.ktl.re.kr/labview/api",
        upload_endpoint: str = "/uploadfiles",
        env_endpoint: str = "/env",
        timeout_seconds: float = 90.0,
        retry_attempts: int = 3,
        retry_base_delay_seconds: float = 2.0,
        retry_backoff_factor: float = 2.0,
        sleep: Callable[[float], Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._upload_url = base_url.rstrip("/") + upload_endpoint
        self._env_url = base_url.rstrip("/") + env_endpoint
        self._timeout_seconds = max(0.1, timeout_seconds)
        self._retry_attempts = max(1, retry_attempts)
        self._retry_base_delay_seconds = max(0.0, retry_base_delay_seconds)
        self._retry_backoff_factor = max(1.0, retry_backoff_factor)
        self._sleep = self._wrap_sleep(sleep)
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: SubmissionSettings,
        *,
        sleep: Callable[[float], Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "SubmissionClient":
        return cls(
            base_url=settings.base_url,
            upload_endpoint=settings.upload_endpoint,
            env_endpoint=settings.env_endpoint,
            timeout_seconds=settings.request_timeout_seconds,
            retry_attempts=settings.retry_attempts,
            retry_base_delay_seconds=settings.retry_base_delay_seconds,
            retry_backoff_factor=settings.retry_backoff_factor,
            sleep=sleep,
            transport=transport,
        )

    @staticmethod
    def _wrap_sleep(
        sleep: Callable[[float], Any] | None,
    ) -> Callable[[float], Awaitable[None]]:
        if sleep is None:
            return asyncio.sleep

        async def _async_sleep(seconds: float) -> None:
            result = sleep(seconds)
            if inspect.isawaitable(result):
                await result  # type: ignore[no-any-return]

        return _async_sleep

    @property
    def upload_url(self) -> str:
        return self._upload_url

    @property
    def env_url(self) -> str:
        return self._env_url

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------
    async def submit(
        self,
        artifacts: Sequence[Artifact],
        payload: Payload | Mapping[str, Any],
    ) -> SubmissionOutcome:
        """Run the upload phase (if there is anything to upload), then the JSON phase."""

        artifacts = tuple(artifacts)
        envelope = payload.to_wire() if isinstance(payload, Payload) else dict(payload)
        receipt_number = envelope.get("LABVIEW_RECEIPTNO")

        upload: PhaseResult | None = None
        if artifacts:
            upload = await self.upload_artifacts(artifacts)
        else:
            logger.info("ktl.upload.skipped", extra={"receipt_number": receipt_number})

        env = await self.send_envelope(envelope)
        return SubmissionOutcome(
            upload=upload,
            env=env,
            uploaded_names=tuple(artifact.name for artifact in artifacts),
        )

    async def upload_artifacts(self, artifacts: Sequence[Artifact]) -> PhaseResult:
        files = [
            ("files", (artifact.name, artifact.data, artifact.mime_type))
            for artifact in artifacts
        ]
        logger.info(
            "ktl.upload.start",
            extra={
                "url": self._upload_url,
                "artifact_names": [artifact.name for artifact in artifacts],
                "total_bytes": sum(len(artifact.data) for artifact in artifacts),
            },
        )
        return await self._with_retries(
            SubmissionPhase.UPLOAD,
            lambda: self._post(SubmissionPhase.UPLOAD, self._upload_url, files=files),
        )

    async def send_envelope(self, envelope: Mapping[str, Any]) -> PhaseResult:
        body = dict(envelope)
        logger.info(
            "ktl.env.start",
            extra={"url": self._env_url, "receipt_number": body.get("LABVIEW_RECEIPTNO")},
        )
        return await self._with_retries(
            SubmissionPhase.ENV,
            lambda: self._post(SubmissionPhase.ENV, self._env_url, json=body),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    async def _with_retries(
        self,
        phase: SubmissionPhase,
        operation: Callable[[], Awaitable[httpx.Response]],
    ) -> PhaseResult:
        delay = self._retry_base_delay_seconds
        for attempt in range(1, self._retry_attempts + 1):
            try:
                response = await operation()
                message = self._check_response(phase, response)
            except SubmissionError as exc:
                if not exc.retryable or attempt >= self._retry_attempts:
                    logger.error(
                        "ktl.%s.failed",
                        phase.value,
                        extra={
                            "phase": phase.value,
                            "attempt": attempt,
                            "status_code": exc.status_code,
                            "error_detail": exc.message,
                        },
                    )
                    raise
                logger.warning(
                    "ktl.%s.retry",
                    phase.value,
                    extra={
                        "phase": phase.value,
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "status_code": exc.status_code,
                        "error_detail": exc.message,
                    },
                )
                await self._sleep(delay)
                delay *= self._retry_backoff_factor
                continue

            logger.info(
                "ktl.%s.success",
                phase.value,
                extra={"phase": phase.value, "attempt": attempt, "status_code": response.status_code},
            )
            return PhaseResult(
                phase=phase,
                attempts=attempt,
                status_code=response.status_code,
                message=message,
            )

        raise AssertionError("retry loop exited without a result")  # pragma: no cover

    async def _post(self, phase: SubmissionPhase, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds, transport=self._transport
            ) as client:
                return await client.post(url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                phase, f"timed out after {self._timeout_seconds:g}s"
            ) from exc
        except httpx.RequestError as exc:
            raise NetworkError(phase, f"network error: {exc}") from exc

    @staticmethod
    def _check_response(phase: SubmissionPhase, response: httpx.Response) -> str | None:
        """Return the server message of a successful response or raise."""

        body = _json_body(response)
        detail = _extract_message(body)
        if response.status_code != 200:
            raise ServerError(
                phase,
                f"HTTP {response.status_code}",
                detail=detail,
                status_code=response.status_code,
            )
        if body is not None and not _service_flag_ok(body):
            raise ServiceRejectedError(
                phase,
                "service reported failure",
                detail=detail,
                status_code=response.status_code,
            )
        return detail


def _json_body(response: httpx.Response) -> dict[str, Any] | None:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _extract_message(body: Mapping[str, Any] | None) -> str | None:
    if not body:
        return None
    for key in ("message", "msg"):
        value = body.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _service_flag_ok(body: Mapping[str, Any]) -> bool:
    """Apply the ``Success``/``code`` rule; a body without either flag passes."""

    if "Success" not in body and "code" not in body:
        return True
    if str(body.get("Success")).strip().lower() == "true":
        return True
    code = body.get("code")
    if isinstance(code, bool) or code is None:
        return False
    try:
        return int(code) == 0
    except (TypeError, ValueError):
        return False


__all__ = ["PhaseResult", "SubmissionClient", "SubmissionOutcome"]
