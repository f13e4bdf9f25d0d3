import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from musiclink.errors import TransportError

from .constants import HttpMethod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    method: HttpMethod
    url: str
    params: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decoded body; ``None`` for an empty body. Raises ``ValueError`` on bad JSON."""
        if not self.body:
            return None
        return json.loads(self.body.decode("utf-8"))


class Transport:
    """Sends an ``ApiRequest``; raises ``TransportError`` when no response arrives."""

    async def send(self, request: ApiRequest) -> ApiResponse:
        raise NotImplementedError

    def close(self) -> None:
        pass


class RequestsTransport(Transport):
    def __init__(self, timeout: int = 15, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def _request(self, request: ApiRequest) -> requests.Response:
        return self.session.request(
            request.method.value,
            request.url,
            params=request.params or None,
            data=request.data or None,
            headers=request.headers,
            timeout=self.timeout,
        )

    def send_sync(self, request: ApiRequest) -> ApiResponse:
        logger.debug("%s %s", request.method.value, request.url)
        try:
            response = self._request(request)

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "1"))
                time.sleep(retry_after + 0.5)
                response = self._request(request)
        except (requests.RequestException, ValueError) as exc:
            raise TransportError(f"{request.method.value} {request.url} failed: {exc}") from exc

        return ApiResponse(
            status_code=response.status_code,
            body=response.content or b"",
            headers=dict(response.headers),
        )

    async def send(self, request: ApiRequest) -> ApiResponse:
        return await asyncio.to_thread(self.send_sync, request)
