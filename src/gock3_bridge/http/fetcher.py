"""Async HTTP client for streamed artifact downloads."""

from __future__ import annotations

import logging

import httpx

from gock3_bridge import __version__
from gock3_bridge.errors import TransportError

logger = logging.getLogger(__name__)

HTTP_OK = 200
DEFAULT_USER_AGENT = f"gock3-bridge/{__version__} (+https://github.com/unLomTrois/gock3-lsp)"


class AsyncHttpFetcher:
    """Single-shot GET downloader without retries or internal timeouts.

    Redirects are followed by the transport. The whole body is accumulated in
    memory; committing it to disk is the caller's job.
    """

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_headers = {"User-Agent": user_agent}
        if headers:
            base_headers.update(headers)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(None),
            headers=base_headers,
            transport=transport,
            follow_redirects=True,
        )

    async def download(self, url: str) -> bytes:
        """Fetch ``url`` and return the complete response body."""

        try:
            async with self._client.stream("GET", url) as response:
                if response.status_code != HTTP_OK:
                    raise TransportError(
                        f"HTTP {response.status_code}",
                        url=url,
                        status_code=response.status_code,
                    )
                expected = response.headers.get("content-length")
                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("HTTP error downloading %s: %s", url, exc)
            raise TransportError(str(exc) or type(exc).__name__, url=url, cause=repr(exc)) from exc

        logger.info(
            "Downloaded %s: %d bytes (content-length=%s)",
            url,
            len(body),
            expected or "-",
        )
        return bytes(body)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncHttpFetcher:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
