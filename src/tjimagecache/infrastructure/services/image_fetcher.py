"""Network tier: stream the bytes behind a URL into a writable destination."""

from __future__ import annotations

import logging
import shutil
from typing import BinaryIO, Protocol
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx

from ...config import ACCEPT_HEADER, FETCH_CHUNK_SIZE, FETCH_TIMEOUT_SEC, USER_AGENT
from ...errors import TransportError

LOGGER = logging.getLogger(__name__)


class ImageFetcher(Protocol):
    """Protocol for fetchers used by the lookup engine."""

    def fetch(self, url: str, destination: BinaryIO) -> None:
        """Write the body behind *url* to *destination* or raise :class:`TransportError`."""
        ...


class HttpImageFetcher:
    """Fetch images over HTTP(S) with a shared :class:`httpx.Client`.

    Responses must be 2xx and advertise an ``image/*`` content type.
    Redirects are followed.  Nothing is retried; a timeout is a terminal
    failure.  ``file://`` URLs are served from the local filesystem.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        timeout: float = FETCH_TIMEOUT_SEC,
        chunk_size: int = FETCH_CHUNK_SIZE,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )
        self._chunk_size = chunk_size

    def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            self._client.close()

    def fetch(self, url: str, destination: BinaryIO) -> None:
        if url.startswith("file://"):
            self._copy_local(url, destination)
            return
        try:
            with self._client.stream("GET", url, headers={"Accept": ACCEPT_HEADER}) as response:
                if not response.is_success:
                    raise TransportError(url, f"HTTP {response.status_code}")
                content_type = response.headers.get("content-type", "")
                if not content_type.lower().startswith("image/"):
                    raise TransportError(url, f"invalid content-type {content_type!r}")
                for chunk in response.iter_bytes(self._chunk_size):
                    destination.write(chunk)
        except httpx.TimeoutException as exc:
            raise TransportError(url, "timeout") from exc
        except httpx.HTTPError as exc:
            raise TransportError(url, f"http error: {exc}") from exc

    @staticmethod
    def _copy_local(url: str, destination: BinaryIO) -> None:
        path = url2pathname(urlsplit(url).path)
        try:
            with open(path, "rb") as handle:
                shutil.copyfileobj(handle, destination)
        except OSError as exc:
            raise TransportError(url, f"cannot read local file: {exc}") from exc
