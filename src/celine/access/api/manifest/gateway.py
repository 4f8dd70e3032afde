from __future__ import annotations

import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Optional

import httpx

from celine.access.core.config import settings
from celine.access.core.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class ManifestGateway:
    """Blocking JSON POST against the manifest API.

    One attempt per call: no retries and redirects are not followed.
    Connection and timeout failures raise ``TransportError``; a partial
    response is never returned.

    The underlying ``httpx.Client`` is shared and safe to use from several
    query threads at once.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._client = httpx.Client(
            timeout=self._timeout,
            follow_redirects=False,
            transport=transport,
        )

    def call(
        self,
        url: str,
        api_key: str,
        body: dict[str, Any],
        timeout: Optional[float] = None,
    ) -> GatewayResponse:
        headers = {
            "X-API-Key": api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            resp = self._client.post(
                url,
                json=body,
                headers=headers,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"request timed out: {e}", details={"url": url}
            ) from e
        except httpx.RequestError as e:
            raise TransportError(str(e) or type(e).__name__, details={"url": url}) from e

        logger.debug("POST %s -> %s", url, resp.status_code)
        return GatewayResponse(status_code=resp.status_code, body=resp.content)

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ManifestGateway":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
