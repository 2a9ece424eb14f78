from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Callable
from urllib.parse import quote

import httpx

from ..config import settings

ProgressCallback = Callable[[int, int], None]


class StorageServiceError(RuntimeError):
    """Raised when Supabase Storage returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error


class StorageObjectNotFoundError(StorageServiceError):
    """Raised when Supabase Storage reports an object is missing."""


@dataclass(slots=True)
class ObjectMetadata:
    content_length: int
    content_type: str


@dataclass(slots=True)
class ObjectStream:
    """An opened storage download; `iter_bytes` closes it when iteration stops."""

    response: httpx.Response
    client: httpx.AsyncClient
    chunk_size: int

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes(self.chunk_size):
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()


@dataclass(slots=True)
class StoredObject:
    key: str
    url: str
    size: int


class StorageService:
    def __init__(
        self,
        *,
        bucket: str = "lecture-recordings",
        supabase_url: str | None = None,
        service_role_key: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._bucket = bucket.strip() or "lecture-recordings"
        self._supabase_url = supabase_url or (
            settings.supabase_url.unicode_string()
            if settings.supabase_url is not None
            else None
        )
        self._service_role_key = service_role_key or settings.supabase_service_role_key
        self._timeout = timeout

    def _object_url(self, key: str, *, authenticated: bool = False) -> str:
        if not key:
            raise StorageServiceError("storage key is required")
        supabase_url = self._supabase_url
        if not supabase_url or not self._service_role_key:
            raise StorageServiceError("Supabase Storage is not configured")
        base_url = supabase_url.rstrip("/")
        quoted_key = quote(key.lstrip("/"), safe="/")
        scope = "object/authenticated" if authenticated else "object"
        return f"{base_url}/storage/v1/{scope}/{self._bucket}/{quoted_key}"

    def _auth_headers(self) -> dict[str, str]:
        return {
            "apikey": self._service_role_key or "",
            "Authorization": f"Bearer {self._service_role_key}",
        }

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code < 400:
            return
        if response.status_code == 404:
            raise StorageObjectNotFoundError(
                "Supabase Storage object not found",
                status_code=response.status_code,
                error="not_found",
            )
        # Storage reports missing objects as 400 with a not_found body on some endpoints.
        error = None
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            error = payload.get("error")
        if response.status_code == 400 and str(error or "") == "not_found":
            raise StorageObjectNotFoundError(
                "Supabase Storage object not found",
                status_code=response.status_code,
                error=str(error),
            )
        raise StorageServiceError(
            f"Supabase Storage {action} failed with status {response.status_code}",
            status_code=response.status_code,
            error=str(error) if error is not None else None,
        )

    async def head_object(self, key: str) -> ObjectMetadata:
        url = self._object_url(key, authenticated=True)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.head(url, headers=self._auth_headers())
            except httpx.HTTPError as exc:  # pragma: no cover - network failure path
                raise StorageServiceError("Failed to call Supabase Storage") from exc

        if response.status_code in {400, 404}:
            # HEAD responses carry no body to tell the two apart.
            raise StorageObjectNotFoundError(
                "Supabase Storage object not found",
                status_code=response.status_code,
                error="not_found",
            )
        self._raise_for_status(response, "metadata lookup")
        try:
            length = int(response.headers.get("content-length") or 0)
        except ValueError:
            length = 0
        content_type = response.headers.get("content-type") or "video/mp4"
        return ObjectMetadata(content_length=length, content_type=content_type)

    async def open_object(
        self,
        key: str,
        *,
        start: int | None = None,
        end: int | None = None,
        chunk_size: int | None = None,
    ) -> ObjectStream:
        """Open a GET for the object (or the inclusive byte range start-end).

        Upstream failures surface here, before any response bytes are sent. The
        returned stream owns the connection until `aclose()` or until its body
        iterator finishes.
        """

        url = self._object_url(key, authenticated=True)
        headers = self._auth_headers()
        if start is not None:
            headers["Range"] = f"bytes={start}-{'' if end is None else end}"

        client = httpx.AsyncClient(timeout=self._timeout)
        try:
            request = client.build_request("GET", url, headers=headers)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise StorageServiceError("Failed to call Supabase Storage") from exc

        if response.status_code >= 400:
            try:
                await response.aread()
            except httpx.HTTPError as exc:
                raise StorageServiceError(
                    "Failed to call Supabase Storage", status_code=response.status_code
                ) from exc
            finally:
                await response.aclose()
                await client.aclose()
            self._raise_for_status(response, "download")

        return ObjectStream(
            response=response,
            client=client,
            chunk_size=chunk_size or settings.stream_chunk_size,
        )

    async def upload_object(
        self,
        key: str,
        chunks: AsyncIterator[bytes],
        *,
        size: int,
        content_type: str,
        on_progress: ProgressCallback | None = None,
    ) -> StoredObject:
        url = self._object_url(key)

        async def _body() -> AsyncIterator[bytes]:
            sent = 0
            async for chunk in chunks:
                sent += len(chunk)
                yield chunk
                if on_progress is not None:
                    on_progress(sent, size)

        headers = {
            **self._auth_headers(),
            "Content-Type": content_type,
            "Content-Length": str(size),
            "x-upsert": "false",
        }
        async with httpx.AsyncClient(timeout=None) as client:
            try:
                response = await client.post(url, content=_body(), headers=headers)
            except httpx.HTTPError as exc:  # pragma: no cover - network failure path
                raise StorageServiceError("Failed to call Supabase Storage") from exc

        self._raise_for_status(response, "upload")
        return StoredObject(key=key, url=url, size=size)

    async def delete_object(self, key: str) -> bool:
        url = self._object_url(key)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.delete(url, headers=self._auth_headers())
            except httpx.HTTPError as exc:  # pragma: no cover - network failure path
                raise StorageServiceError("Failed to call Supabase Storage") from exc

        if response.status_code in {200, 204}:
            return True
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise StorageServiceError(
                f"Supabase Storage delete failed with status {response.status_code}"
            )
        return True


_storage_services: dict[str, StorageService] = {}


def get_storage_service(bucket: str | None = None) -> StorageService:
    normalized = (bucket or "").strip() or settings.recordings_bucket
    service = _storage_services.get(normalized)
    if service is None:
        service = StorageService(bucket=normalized)
        _storage_services[normalized] = service
    return service
