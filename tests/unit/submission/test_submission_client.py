from __future__ import annotations

from typing import Any

import httpx
import pytest

from src.ktl_submit.domain.models import Artifact, ArtifactKind, Payload, SubmissionPhase
from src.ktl_submit.submission.submission_client import SubmissionClient
from src.ktl_submit.submission.submission_errors import (
    NetworkError,
    RequestTimeoutError,
    ServerError,
    ServiceRejectedError,
)


class DummyHTTPResponse:
    def __init__(
        self,
        status_code: int,
        json_data: Any = None,
        text: str = "",
    ) -> None:
        self.status_code = status_code
        self._json_data = json_data
        self.text = text

    def json(self) -> Any:
        if self._json_data is None:
            raise ValueError("No JSON data")
        return self._json_data


class DummyAsyncClient:
    def __init__(self, queue: list[Any], calls: list[dict[str, Any]]) -> None:
        self._queue = queue
        self._calls = calls

    async def __aenter__(self) -> "DummyAsyncClient":  # pragma: no cover - helper
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:  # pragma: no cover - helper
        return None

    async def post(self, url: str, **kwargs: Any) -> DummyHTTPResponse:
        self._calls.append({"url": url, **kwargs})
        if not self._queue:
            raise RuntimeError("No post responses queued")
        item = self._queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def configure_httpx(monkeypatch, responses: list[Any]) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def factory(*args, **kwargs):
        return DummyAsyncClient(responses, calls)

    monkeypatch.setattr("httpx.AsyncClient", factory)
    return calls


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def client(sleeps: list[float]) -> SubmissionClient:
    return SubmissionClient(
        base_url="https://ktl.test/labview/api/",
        retry_attempts=3,
        retry_base_delay_seconds=2.0,
        retry_backoff_factor=2.0,
        sleep=sleeps.append,
    )


@pytest.fixture
def artifacts() -> list[Artifact]:
    return [
        Artifact(name="R_S_I_datatable.png", data=b"png", mime_type="image/png", kind=ArtifactKind.DATATABLE),
        Artifact(name="R_S_I_Compression.zip", data=b"zip", mime_type="application/zip", kind=ArtifactKind.ARCHIVE),
    ]


@pytest.fixture
def payload() -> Payload:
    return Payload(
        receipt_number="R",
        category_tag="수질_COD",
        operator="tester",
        comment="수질 (항목: COD, 현장: S)",
        items={"Z1": "1.23"},
        fields={},
    )


@pytest.mark.asyncio
async def test_two_phases_run_in_order(monkeypatch, client, artifacts, payload):
    calls = configure_httpx(
        monkeypatch,
        [DummyHTTPResponse(200, {"message": "uploaded"}), DummyHTTPResponse(200, {"Success": "true", "message": "saved"})],
    )

    outcome = await client.submit(artifacts, payload)

    assert [call["url"] for call in calls] == [
        "https://ktl.test/labview/api/uploadfiles",
        "https://ktl.test/labview/api/env",
    ]
    assert calls[0]["files"] == [
        ("files", ("R_S_I_datatable.png", b"png", "image/png")),
        ("files", ("R_S_I_Compression.zip", b"zip", "application/zip")),
    ]
    assert calls[1]["json"] == payload.to_wire()
    assert outcome.upload is not None and outcome.upload.attempts == 1
    assert outcome.message == "saved"
    assert outcome.uploaded_names == ("R_S_I_datatable.png", "R_S_I_Compression.zip")


@pytest.mark.asyncio
async def test_upload_phase_skipped_without_artifacts(monkeypatch, client, payload):
    calls = configure_httpx(monkeypatch, [DummyHTTPResponse(200)])

    outcome = await client.submit([], payload)

    assert [call["url"] for call in calls] == ["https://ktl.test/labview/api/env"]
    assert outcome.upload is None
    assert outcome.message is None


@pytest.mark.asyncio
async def test_retries_503_up_to_the_attempt_cap(monkeypatch, client, artifacts, payload, sleeps):
    calls = configure_httpx(monkeypatch, [DummyHTTPResponse(503) for _ in range(5)])

    with pytest.raises(ServerError) as exc_info:
        await client.submit(artifacts, payload)

    assert len(calls) == 3
    assert sleeps == [2.0, 4.0]
    assert exc_info.value.phase is SubmissionPhase.UPLOAD
    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "File upload failed: HTTP 503"


@pytest.mark.asyncio
async def test_400_is_not_retried(monkeypatch, client, payload, sleeps):
    calls = configure_httpx(monkeypatch, [DummyHTTPResponse(400, {"message": "invalid schema"}), DummyHTTPResponse(200)])

    with pytest.raises(ServerError) as exc_info:
        await client.submit([], payload)

    assert len(calls) == 1
    assert sleeps == []
    assert exc_info.value.phase is SubmissionPhase.ENV
    assert exc_info.value.message == "invalid schema"


@pytest.mark.asyncio
async def test_upload_500_twice_then_success_continues(monkeypatch, client, artifacts, payload, sleeps):
    calls = configure_httpx(
        monkeypatch,
        [DummyHTTPResponse(500), DummyHTTPResponse(500), DummyHTTPResponse(200), DummyHTTPResponse(200)],
    )

    outcome = await client.submit(artifacts, payload)

    assert len(calls) == 4
    assert outcome.upload is not None and outcome.upload.attempts == 3
    assert outcome.env.attempts == 1
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"Success": "false", "msg": "duplicate receipt"},
        {"code": 1, "msg": "duplicate receipt"},
        {"code": "E01", "message": "duplicate receipt"},
    ],
)
async def test_service_failure_flag_is_terminal(monkeypatch, client, payload, sleeps, body):
    calls = configure_httpx(monkeypatch, [DummyHTTPResponse(200, body), DummyHTTPResponse(200)])

    with pytest.raises(ServiceRejectedError) as exc_info:
        await client.submit([], payload)

    assert len(calls) == 1
    assert sleeps == []
    assert exc_info.value.message == "duplicate receipt"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{"Success": "true"}, {"code": 0}, {"Success": "false", "code": 0}, {"result": "ok"}, ["ok"], None],
)
async def test_success_flags(monkeypatch, client, payload, body):
    configure_httpx(monkeypatch, [DummyHTTPResponse(200, body)])

    outcome = await client.submit([], payload)

    assert outcome.env.status_code == 200


@pytest.mark.asyncio
async def test_network_errors_and_timeouts_are_retried(monkeypatch, client, payload, sleeps):
    request = httpx.Request("POST", "https://ktl.test/labview/api/env")
    calls = configure_httpx(
        monkeypatch,
        [
            httpx.ConnectError("refused", request=request),
            httpx.ReadTimeout("slow", request=request),
            DummyHTTPResponse(200),
        ],
    )

    outcome = await client.submit([], payload)

    assert len(calls) == 3
    assert outcome.env.attempts == 3
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_timeout_surfaces_after_cap(monkeypatch, payload):
    request = httpx.Request("POST", "https://ktl.test/env")
    configure_httpx(monkeypatch, [httpx.ReadTimeout("slow", request=request)])
    client = SubmissionClient(retry_attempts=1, sleep=lambda _: None)

    with pytest.raises(RequestTimeoutError) as exc_info:
        await client.submit([], payload)

    assert exc_info.value.message == "JSON data send failed: timed out after 90s"


@pytest.mark.asyncio
async def test_network_error_carries_phase(monkeypatch, artifacts, payload):
    request = httpx.Request("POST", "https://ktl.test/uploadfiles")
    configure_httpx(monkeypatch, [httpx.ConnectError("refused", request=request)])
    client = SubmissionClient(retry_attempts=1)

    with pytest.raises(NetworkError) as exc_info:
        await client.submit(artifacts, payload)

    assert exc_info.value.phase is SubmissionPhase.UPLOAD
    assert exc_info.value.message.startswith("File upload failed: network error")


@pytest.mark.asyncio
async def test_async_sleep_callable_is_awaited(monkeypatch, payload):
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    configure_httpx(monkeypatch, [DummyHTTPResponse(502), DummyHTTPResponse(200)])
    client = SubmissionClient(retry_base_delay_seconds=0.5, sleep=fake_sleep)

    await client.submit([], payload)

    assert slept == [0.5]
