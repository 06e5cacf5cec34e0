"""Common wire client contract, errors and HTTP/SSE plumbing."""

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from chorus.config import OrchestratorConfig
from chorus.models.chat import ChatRequest, ChatResponse, StreamDelta
from chorus.models.domain import Provider, headers_to_dict
from chorus.utils.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})

_DATA_URI_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


class WireClientError(Exception):
    """Base error raised by wire protocol clients."""


class WireProtocolError(WireClientError):
    """Provider answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Chat API error: {status_code} - {body}")


class EmptyResponseError(WireClientError):
    """A streaming response arrived without a body."""


def parse_data_uri(url: str) -> tuple[str, str] | None:
    """Split a base64 data URI into ``(media_type, data)``, or None for other URLs."""
    match = _DATA_URI_RE.match(url)
    if not match:
        return None
    return match.group(1), match.group(2)


class WireClient(ABC):
    """One provider family's translation of the normalized chat contract."""

    def __init__(self, provider: Provider, config: OrchestratorConfig | None = None):
        self.provider = provider
        self.config = config or OrchestratorConfig()
        self.base_url = provider.base_url.rstrip("/")
        self.api_key = provider.api_key
        self.custom_headers = headers_to_dict(provider.custom_headers)

    @abstractmethod
    def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        """Stream normalized deltas for a chat request."""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Run a chat request to completion."""

    @abstractmethod
    async def list_models(self) -> list[str]:
        """List model ids offered by the provider."""

    async def test_connection(self) -> bool:
        """Return True if the provider answers a model listing."""
        try:
            await self.list_models()
            return True
        except Exception as e:
            logger.info(f"Connection test failed for {self.provider.name}: {e}")
            return False

    async def aclose(self) -> None:
        """Release network resources held by the client."""


class HttpWireClient(WireClient):
    """Wire client speaking raw HTTP through a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        provider: Provider,
        config: OrchestratorConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(provider, config)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self.config.request_timeout)

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", **self.custom_headers}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _send_with_retries(self, request: httpx.Request, stream: bool = False) -> httpx.Response:
        """Send a request, retrying transient failures with exponential back-off."""
        max_retries = self.config.max_retries
        for attempt in range(max_retries + 1):
            try:
                response = await self._http.send(request, stream=stream)
            except httpx.TransportError as e:
                if attempt >= max_retries:
                    raise
                logger.warning(f"Transport error calling {self.provider.name}, retrying: {e}")
                await asyncio.sleep(self.config.retry_base_delay * (3**attempt))
                continue

            if response.status_code in RETRYABLE_STATUS and attempt < max_retries:
                await response.aclose()
                logger.warning(f"{self.provider.name} returned {response.status_code}, retrying")
                await asyncio.sleep(self.config.retry_base_delay * (3**attempt))
                continue

            return response

        raise WireClientError(f"Failed to complete request after {max_retries + 1} attempts")

    @staticmethod
    async def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        await response.aread()
        raise WireProtocolError(response.status_code, response.text)

    async def _get_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        request = self._http.build_request("GET", url, headers=headers or self._headers())
        response = await self._send_with_retries(request)
        await self._raise_for_status(response)
        return response.json()

    async def _post_json(self, url: str, body: dict[str, Any], headers: dict[str, str] | None = None) -> Any:
        request = self._http.build_request("POST", url, json=body, headers=headers or self._headers())
        response = await self._send_with_retries(request)
        await self._raise_for_status(response)
        return response.json()

    @asynccontextmanager
    async def _open_stream(
        self, url: str, body: dict[str, Any], headers: dict[str, str] | None = None
    ) -> AsyncIterator[httpx.Response]:
        request = self._http.build_request("POST", url, json=body, headers=headers or self._headers())
        response = await self._send_with_retries(request, stream=True)
        try:
            await self._raise_for_status(response)
            yield response
        finally:
            await response.aclose()

    @staticmethod
    async def iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
        """Yield the payload of each ``data:`` line of an SSE response.

        Raises:
            EmptyResponseError: If the response carried no lines at all
        """
        received = False
        async for raw_line in response.aiter_lines():
            received = True
            line = raw_line.strip()
            if not line.startswith("data:"):
                continue
            yield line[5:].strip()

        if not received:
            raise EmptyResponseError("Response body is empty, expected an event stream")
