from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from spark_cloud._errors import SparkAPIError

logger = logging.getLogger(__name__)

FileSpec = tuple[str, bytes]


@dataclass(frozen=True, slots=True)
class HttpConfig:
    base_url: str
    timeout_s: float = 120.0


def _parse_error_response(
    status_code: int,
    body_text: str,
    content_type: str,
) -> SparkAPIError:
    """
    Parse an error response from the cloud.

    When the body is not JSON or does not match the expected envelope,
    the structured fields of the returned SparkAPIError stay None.
    """
    message = "HTTP error"
    error_code: str | None = None
    error_description: str | None = None
    info: Any | None = None

    if "application/json" not in content_type.lower():
        if body_text and body_text.strip():
            message = body_text
        return SparkAPIError(status_code=status_code, message=message, body=body_text)

    try:
        data = json.loads(body_text) if body_text else {}
    except (json.JSONDecodeError, ValueError):
        if body_text and body_text.strip():
            message = body_text
        return SparkAPIError(status_code=status_code, message=message, body=body_text)

    if not isinstance(data, dict):
        return SparkAPIError(
            status_code=status_code,
            message=str(data) if data else message,
            body=body_text,
        )

    # Envelope: { "ok": false, "error": "...", "error_description": "...", "info": ... }
    err = data.get("error")
    if isinstance(err, str) and err.strip():
        error_code = err.strip()
        message = error_code

    desc = data.get("error_description")
    if isinstance(desc, str) and desc.strip():
        error_description = desc.strip()
        message = error_description

    if error_code is None:
        msg = data.get("message")
        if isinstance(msg, str) and msg.strip():
            message = msg.strip()

    info = data.get("info")

    return SparkAPIError(
        status_code=status_code,
        message=message,
        body=body_text,
        error_code=error_code,
        error_description=error_description,
        info=info,
    )


class SparkHttpClient:
    """
    Thin HTTPX wrapper with:
    - form-encoded and multipart requests
    - SSE streaming through httpx.Client.stream / AsyncClient.stream
    - optional debug logging
    """

    def __init__(self, *, config: HttpConfig, access_token: str) -> None:
        self._config = config
        self._access_token = access_token
        self._debug_http = os.getenv("SPARK_HTTP_DEBUG", "").lower() in {"1", "true", "yes", "on"}

        def _redact_headers(headers: dict[str, Any]) -> dict[str, Any]:
            out = dict(headers)
            for k in ("authorization", "Authorization"):
                if k in out:
                    out[k] = "Bearer ***REDACTED***"
            return out

        def _log_request(request: httpx.Request) -> None:
            if not self._debug_http:
                return
            logger.warning("HTTPX REQUEST %s %s", request.method, request.url)
            logger.warning("HTTPX REQUEST headers=%s", _redact_headers(dict(request.headers)))
            try:
                content = request.content
            except httpx.RequestNotRead:
                logger.warning("HTTPX REQUEST body=(streaming; not logged)")
                return
            if content:
                try:
                    logger.warning("HTTPX REQUEST body=%s", content.decode("utf-8"))
                except Exception:
                    logger.warning("HTTPX REQUEST body=(binary) len=%s", len(content))

        def _log_response_head(response: httpx.Response) -> bool:
            req = response.request
            logger.warning("HTTPX RESPONSE %s %s -> %s", req.method, req.url, response.status_code)
            logger.warning("HTTPX RESPONSE headers=%s", dict(response.headers))
            if "text/event-stream" in response.headers.get("content-type", ""):
                logger.warning("HTTPX RESPONSE body=(event-stream; not auto-logged)")
                return False
            return True

        def _log_response_sync(response: httpx.Response) -> None:
            if not self._debug_http or not _log_response_head(response):
                return
            try:
                response.read()
                logger.warning("HTTPX RESPONSE body=%s", response.text)
            except Exception as e:
                logger.warning("HTTPX RESPONSE body=(unreadable) err=%r", e)

        async def _log_request_async(request: httpx.Request) -> None:
            _log_request(request)

        async def _log_response_async(response: httpx.Response) -> None:
            if not self._debug_http or not _log_response_head(response):
                return
            try:
                await response.aread()
                logger.warning("HTTPX RESPONSE body=%s", response.text)
            except Exception as e:
                logger.warning("HTTPX RESPONSE body=(unreadable) err=%r", e)

        EventHooksDict = dict[str, list[Callable[..., Any]]]

        hooks_sync: EventHooksDict = {"request": [_log_request], "response": [_log_response_sync]}
        hooks_async: EventHooksDict = {"request": [_log_request_async], "response": [_log_response_async]}

        self._client = httpx.Client(timeout=httpx.Timeout(config.timeout_s), event_hooks=hooks_sync)
        self._aclient = httpx.AsyncClient(timeout=httpx.Timeout(config.timeout_s), event_hooks=hooks_async)

    def close(self) -> None:
        self._client.close()

    async def aclose(self) -> None:
        await self._aclient.aclose()

    def _url(self, path: str) -> str:
        return f"{self._config.base_url}{path}"

    def _headers(self, *, accept: str | None = None) -> dict[str, str]:
        headers: dict[str, str] = {"Authorization": f"Bearer {self._access_token}"}
        if accept:
            headers["Accept"] = accept
        return headers

    def _stream_timeout(self) -> httpx.Timeout:
        # Event streams stay open indefinitely between events.
        return httpx.Timeout(self._config.timeout_s, read=None)

    @staticmethod
    def raise_for_status(resp: httpx.Response) -> None:
        """Check the status code and raise a structured SparkAPIError."""
        if 200 <= resp.status_code < 300:
            return

        body_text: str | None = None
        try:
            body_text = resp.text
        except Exception:
            body_text = None

        content_type = resp.headers.get("content-type", "")

        raise _parse_error_response(
            status_code=resp.status_code,
            body_text=body_text or "",
            content_type=content_type,
        )

    def get(self, path: str, *, params: dict[str, Any] | None = None) -> httpx.Response:
        resp = self._client.get(self._url(path), headers=self._headers(), params=params)
        self.raise_for_status(resp)
        return resp

    async def aget(self, path: str, *, params: dict[str, Any] | None = None) -> httpx.Response:
        resp = await self._aclient.get(self._url(path), headers=self._headers(), params=params)
        self.raise_for_status(resp)
        return resp

    def post_form(
        self,
        path: str,
        data: dict[str, Any] | None = None,
        *,
        files: list[tuple[str, FileSpec]] | None = None,
    ) -> httpx.Response:
        resp = self._client.post(self._url(path), headers=self._headers(), data=data, files=files)
        self.raise_for_status(resp)
        return resp

    async def apost_form(
        self,
        path: str,
        data: dict[str, Any] | None = None,
        *,
        files: list[tuple[str, FileSpec]] | None = None,
    ) -> httpx.Response:
        resp = await self._aclient.post(self._url(path), headers=self._headers(), data=data, files=files)
        self.raise_for_status(resp)
        return resp

    def put_form(
        self,
        path: str,
        data: dict[str, Any] | None = None,
        *,
        files: list[tuple[str, FileSpec]] | None = None,
    ) -> httpx.Response:
        resp = self._client.put(self._url(path), headers=self._headers(), data=data, files=files)
        self.raise_for_status(resp)
        return resp

    async def aput_form(
        self,
        path: str,
        data: dict[str, Any] | None = None,
        *,
        files: list[tuple[str, FileSpec]] | None = None,
    ) -> httpx.Response:
        resp = await self._aclient.put(self._url(path), headers=self._headers(), data=data, files=files)
        self.raise_for_status(resp)
        return resp

    def delete(self, path: str) -> httpx.Response:
        resp = self._client.delete(self._url(path), headers=self._headers())
        self.raise_for_status(resp)
        return resp

    async def adelete(self, path: str) -> httpx.Response:
        resp = await self._aclient.delete(self._url(path), headers=self._headers())
        self.raise_for_status(resp)
        return resp

    def stream_get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        """
        Return an httpx stream context manager for an event stream.

        Usage:
            with client.stream_get("/v1/events") as r:
                for chunk in r.iter_bytes():
                    ...
        """
        return self._client.stream(
            "GET",
            self._url(path),
            headers=self._headers(accept="text/event-stream"),
            params=params,
            timeout=self._stream_timeout(),
        )

    def astream_get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        """
        Return an async httpx stream context manager for an event stream.

        Usage:
            async with client.astream_get("/v1/events") as r:
                async for chunk in r.aiter_bytes():
                    ...
        """
        return self._aclient.stream(
            "GET",
            self._url(path),
            headers=self._headers(accept="text/event-stream"),
            params=params,
            timeout=self._stream_timeout(),
        )
