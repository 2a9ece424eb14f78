import httpx
import pytest

from lms.services import storage_service as storage_module
from lms.services.storage_service import (
    StorageObjectNotFoundError,
    StorageService,
    StorageServiceError,
)

pytestmark = pytest.mark.anyio("asyncio")


def _service() -> StorageService:
    return StorageService(
        bucket="lecture-recordings",
        supabase_url="https://example.supabase.co",
        service_role_key="service-role-key",
    )


def _use_transport(monkeypatch, handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []
    original_client = httpx.AsyncClient

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    def _client(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(_handler)
        return original_client(*args, **kwargs)

    monkeypatch.setattr(storage_module.httpx, "AsyncClient", _client)
    return seen


async def test_head_object_reads_length_and_type(monkeypatch):
    seen = _use_transport(
        monkeypatch,
        lambda request: httpx.Response(
            200, headers={"content-length": "2048", "content-type": "video/webm"}
        ),
    )

    meta = await _service().head_object("lecture-recordings/c1/intro.webm")

    assert meta.content_length == 2048
    assert meta.content_type == "video/webm"
    request = seen[0]
    assert request.method == "HEAD"
    assert str(request.url) == (
        "https://example.supabase.co/storage/v1/object/authenticated/"
        "lecture-recordings/lecture-recordings/c1/intro.webm"
    )
    assert request.headers["apikey"] == "service-role-key"
    assert request.headers["authorization"] == "Bearer service-role-key"


async def test_head_object_defaults_content_type(monkeypatch):
    _use_transport(monkeypatch, lambda request: httpx.Response(200, headers={"content-length": "10"}))

    meta = await _service().head_object("a.mp4")

    assert meta.content_type == "video/mp4"


@pytest.mark.parametrize("status_code", [400, 404])
async def test_head_object_missing(monkeypatch, status_code):
    _use_transport(monkeypatch, lambda request: httpx.Response(status_code))

    with pytest.raises(StorageObjectNotFoundError):
        await _service().head_object("missing.mp4")


async def test_open_object_forwards_range(monkeypatch):
    seen = _use_transport(monkeypatch, lambda request: httpx.Response(206, content=b"0123456789"))

    stream = await _service().open_object("a.mp4", start=10, end=19, chunk_size=4)
    chunks = [chunk async for chunk in stream.iter_bytes()]

    assert b"".join(chunks) == b"0123456789"
    assert seen[0].method == "GET"
    assert seen[0].headers["range"] == "bytes=10-19"


async def test_open_object_without_range_sends_no_range_header(monkeypatch):
    seen = _use_transport(monkeypatch, lambda request: httpx.Response(200, content=b"abc"))

    stream = await _service().open_object("a.mp4")
    body = b"".join([chunk async for chunk in stream.iter_bytes()])

    assert body == b"abc"
    assert "range" not in seen[0].headers


async def test_open_object_surfaces_upstream_errors_before_streaming(monkeypatch):
    _use_transport(monkeypatch, lambda request: httpx.Response(500, json={"error": "boom"}))

    with pytest.raises(StorageServiceError) as excinfo:
        await _service().open_object("a.mp4")

    assert excinfo.value.status_code == 500
    assert excinfo.value.error == "boom"


async def test_open_object_wraps_transport_errors(monkeypatch):
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    _use_transport(monkeypatch, _handler)

    with pytest.raises(StorageServiceError, match="Failed to call Supabase Storage"):
        await _service().open_object("a.mp4")


class _TrackedBody(httpx.AsyncByteStream):
    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


async def test_closing_body_early_closes_storage_read(monkeypatch):
    upstream = _TrackedBody([b"abcd", b"efgh", b"ijkl"])
    _use_transport(monkeypatch, lambda request: httpx.Response(200, stream=upstream))

    stream = await _service().open_object("a.mp4", chunk_size=4)
    body = stream.iter_bytes()
    first = await body.__anext__()
    await body.aclose()

    assert first == b"abcd"
    assert upstream.closed
    assert stream.response.is_closed
    assert stream.client.is_closed


async def test_upload_object_reports_progress(monkeypatch):
    received: list[bytes] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        received.append(request.read())
        return httpx.Response(200, json={"Key": "lecture-recordings/a.mp4"})

    seen = _use_transport(monkeypatch, _handler)
    progress: list[tuple[int, int]] = []

    async def _chunks():
        yield b"abcd"
        yield b"efgh"

    stored = await _service().upload_object(
        "c1/a.mp4",
        _chunks(),
        size=8,
        content_type="video/mp4",
        on_progress=lambda sent, total: progress.append((sent, total)),
    )

    assert received == [b"abcdefgh"]
    assert progress == [(4, 8), (8, 8)]
    assert stored.key == "c1/a.mp4"
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/storage/v1/object/lecture-recordings/c1/a.mp4"
    assert seen[0].headers["content-type"] == "video/mp4"


async def test_delete_object_missing_returns_false(monkeypatch):
    _use_transport(monkeypatch, lambda request: httpx.Response(404))

    assert await _service().delete_object("gone.mp4") is False


def test_unconfigured_service_refuses_requests():
    service = StorageService(bucket="lecture-recordings", supabase_url="", service_role_key="")
    service._supabase_url = None

    with pytest.raises(StorageServiceError):
        service._object_url("a.mp4")
