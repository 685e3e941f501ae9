"""Vertesia API client: credential lifecycle, authenticated requests and run streaming."""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable

import httpx
from loguru import logger
from pydantic import ValidationError

from marketlens.config import settings
from marketlens.models.jobs import Credential
from marketlens.models.schemas import (
    AuthResponse,
    ExecuteAsyncRequest,
    ExecuteConfig,
    ExecutionHandle,
    RunStatus,
    StreamEvent,
)

DATA_PREFIX = "data:"

Clock = Callable[[], float]
EventCallback = Callable[[StreamEvent], None]


class ApiError(Exception):
    """Base error for the Vertesia client."""


class AuthError(ApiError):
    """Credential exchange failed."""


class HttpError(ApiError):
    def __init__(self, status: int, endpoint: str):
        super().__init__(f"API {status}: {endpoint}")
        self.status = status
        self.endpoint = endpoint


class StreamDecodeError(ApiError):
    """A single stream frame could not be decoded."""


# --- Auth ---


class TokenCache:
    """Bearer credential with lazy refresh.

    Concurrent callers that find the credential stale wait on one lock, and the
    first one through performs the exchange; the rest re-check and reuse it.
    """

    def __init__(
        self,
        api_key: str,
        *,
        auth_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        lifetime_seconds: float | None = None,
        skew_seconds: float | None = None,
        clock: Clock = time.time,
    ):
        self.api_key = api_key
        self.auth_url = auth_url or settings.vertesia_auth_url
        self.lifetime_seconds = (
            settings.token_lifetime_seconds if lifetime_seconds is None else lifetime_seconds
        )
        self.skew_seconds = settings.token_skew_seconds if skew_seconds is None else skew_seconds
        self._http_client = http_client
        self._clock = clock
        self._credential: Credential | None = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def _is_fresh(self) -> bool:
        credential = self._credential
        return credential is not None and self._clock() < credential.expires_at - self.skew_seconds

    def invalidate(self) -> None:
        self._credential = None

    async def get_token(self) -> str:
        if self._is_fresh():
            return self._credential.token
        async with self._lock:
            if not self._is_fresh():
                self._credential = await self._exchange()
            return self._credential.token

    async def _exchange(self) -> Credential:
        async def _do_request(client: httpx.AsyncClient) -> httpx.Response:
            return await client.post(
                self.auth_url,
                json={"apikey": self.api_key},
                headers={"Content-Type": "application/json"},
            )

        try:
            if self._http_client is None:
                async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as client:
                    response = await _do_request(client)
            else:
                response = await _do_request(self._http_client)
        except httpx.HTTPError as e:
            raise AuthError(f"Auth failed: {e}") from e

        if not response.is_success:
            raise AuthError(f"Auth failed: HTTP {response.status_code}")

        try:
            auth = AuthResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AuthError("Auth failed: unreadable credential response") from e

        token = auth.bearer
        if not token:
            raise AuthError("Auth failed: no token in response")

        now = self._clock()
        lifetime = auth.expires_in if auth.expires_in else self.lifetime_seconds
        self.refresh_count += 1
        logger.debug(f"Credential refreshed, valid for {lifetime:.0f}s")
        return Credential(token=token, expires_at=now + lifetime)


# --- Streaming ---


def parse_data_line(line: str) -> StreamEvent | None:
    """Decode one stream line. Returns None for lines that are not `data:` frames."""
    if not line.startswith(DATA_PREFIX):
        return None
    raw = line[len(DATA_PREFIX):].strip()
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise StreamDecodeError(f"Malformed frame: {raw[:80]!r}") from e
    if not isinstance(payload, dict):
        # Valid JSON without a kind; delivered as an unknown event.
        payload = {"payload": payload}
    try:
        return StreamEvent.model_validate(payload)
    except ValidationError as e:
        raise StreamDecodeError(f"Invalid frame: {raw[:80]!r}") from e


class StreamDecoder:
    """Incremental line decoder; chunk boundaries need not match line boundaries."""

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[StreamEvent]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode(lines)

    def flush(self) -> list[StreamEvent]:
        tail, self._buffer = self._buffer, ""
        return self._decode([tail]) if tail else []

    @staticmethod
    def _decode(lines: list[str]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for line in lines:
            try:
                event = parse_data_line(line)
            except StreamDecodeError as e:
                logger.debug(f"Skipping stream line: {e}")
                continue
            if event is not None:
                events.append(event)
        return events


# --- Client ---


class ApiClient:
    """Authenticated request/response cycle plus run streaming."""

    def __init__(
        self,
        api_key: str | None = None,
        environment_id: str | None = None,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        token_cache: TokenCache | None = None,
        clock: Clock = time.time,
    ):
        self.environment_id = (
            settings.vertesia_environment_id if environment_id is None else environment_id
        )
        self.base_url = (base_url or settings.vertesia_api_base).rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        self._clock = clock
        self.tokens = token_cache or TokenCache(
            settings.vertesia_api_key if api_key is None else api_key,
            http_client=self._client,
            clock=clock,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request(self, endpoint: str, method: str = "GET", body: Any = None) -> Any:
        token = await self.tokens.get_token()
        kwargs: dict[str, Any] = {
            "headers": {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
        }
        if body is not None:
            kwargs["json"] = body

        response = await self._client.request(method, f"{self.base_url}{endpoint}", **kwargs)
        if not response.is_success:
            if response.status_code == 401:
                # Force a fresh exchange on the next call; this one is not retried.
                self.tokens.invalidate()
            raise HttpError(response.status_code, endpoint)
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Undecodable response body: {endpoint}") from e

    # --- Execution ---

    async def execute_async(self, task: str) -> ExecutionHandle:
        payload = ExecuteAsyncRequest(
            interaction=settings.interaction_name,
            data={"task": task},
            config=ExecuteConfig(environment=self.environment_id, model=settings.model),
            interactive=True,
            max_iterations=settings.max_iterations,
        )
        result = await self.request("/execute/async", "POST", payload.model_dump())
        try:
            return ExecutionHandle.model_validate(result or {})
        except ValidationError as e:
            raise ApiError("Execute response did not include workflowId/runId") from e

    async def get_run_status(self, handle: ExecutionHandle) -> RunStatus:
        data = await self.request(f"/workflows/runs/{handle.workflow_id}/{handle.run_id}")
        if not isinstance(data, dict):
            return RunStatus()
        try:
            return RunStatus.model_validate(data)
        except ValidationError as e:
            raise ApiError(f"Unreadable run status for {handle.run_id}") from e

    async def stream(self, handle: ExecutionHandle, on_event: EventCallback) -> None:
        """Read the run's event stream until end-of-body, calling on_event per frame.

        Malformed frames are dropped. No reconnect is attempted here.
        """
        token = await self.tokens.get_token()
        url = f"{self.base_url}/workflows/runs/{handle.workflow_id}/{handle.run_id}/stream"
        params = {"since": str(int(self._clock() * 1000)), "access_token": token}
        timeout = httpx.Timeout(settings.request_timeout_seconds, read=None)

        async with self._client.stream("GET", url, params=params, timeout=timeout) as response:
            if not response.is_success:
                logger.warning(
                    f"Stream for run {handle.run_id} returned HTTP {response.status_code}"
                )
                return

            decoder = StreamDecoder()
            async for chunk in response.aiter_text():
                for event in decoder.feed(chunk):
                    on_event(event)
            for event in decoder.flush():
                on_event(event)

    # --- Collections (workspaces) ---

    async def load_collections(self) -> Any:
        return await self.request(
            "/collections/search",
            "POST",
            {"dynamic": False, "status": "active", "limit": 100},
        )

    async def create_collection(self, name: str, description: str = "") -> Any:
        return await self.request(
            "/collections",
            "POST",
            {"name": name, "description": description, "dynamic": False},
        )

    async def update_collection(self, collection_id: str, updates: dict[str, Any]) -> Any:
        return await self.request(f"/collections/{collection_id}", "PUT", updates)

    async def delete_collection(self, collection_id: str) -> Any:
        return await self.request(f"/collections/{collection_id}", "DELETE")

    async def get_collection_members(self, collection_id: str) -> list[Any]:
        data = await self.request(f"/collections/{collection_id}/members?limit=1000")
        return data if isinstance(data, list) else []

    async def add_to_collection(self, collection_id: str, doc_ids: list[str]) -> Any:
        return await self.request(
            f"/collections/{collection_id}/members",
            "POST",
            {"action": "add", "members": doc_ids},
        )

    async def remove_from_collection(self, collection_id: str, doc_ids: list[str]) -> Any:
        return await self.request(
            f"/collections/{collection_id}/members",
            "POST",
            {"action": "delete", "members": doc_ids},
        )

    # --- Objects (documents) ---

    async def load_all_objects(self) -> list[dict[str, Any]]:
        data = await self.request("/objects?limit=1000")
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return data.get("objects") or []
        return []

    async def get_object(self, object_id: str) -> Any:
        return await self.request(f"/objects/{object_id}")

    async def get_download_url(self, file_source: str) -> Any:
        return await self.request(
            "/objects/download-url",
            "POST",
            {"file": file_source, "format": "original"},
        )

    async def get_file_content(self, file_source: str) -> str:
        data = await self.get_download_url(file_source)
        url = (data or {}).get("url")
        if not url:
            raise ApiError("Download URL missing from response")
        response = await self._client.get(url)
        if not response.is_success:
            raise HttpError(response.status_code, "download")
        return response.text
