"""HTTP transport used to fetch release metadata and artifacts."""
from __future__ import annotations

import logging
from pathlib import Path

import requests

from . import __version__
from .errors import TransportError

LOGGER = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class HttpFetcher:
    """Thin wrapper around a :class:`requests.Session` that fails on non-2xx."""

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Use *session* (or a fresh one) with an optional transport timeout."""
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", f"k3sctl/{__version__}")
        self.timeout = timeout

    def download(self, url: str, destination: Path) -> Path:
        """Stream *url* into *destination*."""
        LOGGER.debug("GET %s -> %s", url, destination)
        try:
            with self.session.get(
                url,
                stream=True,
                allow_redirects=True,
                timeout=self.timeout,
            ) as response:
                self._raise_for_status(url, response)
                with destination.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
        except requests.RequestException as exc:
            raise TransportError(f"Download of {url} failed: {exc}") from exc
        return destination

    def resolve_final_url(self, url: str) -> str:
        """Follow redirects from *url* and return the effective URL."""
        LOGGER.debug("HEAD %s", url)
        try:
            response = self.session.head(url, allow_redirects=True, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc
        self._raise_for_status(url, response)
        return response.url

    @staticmethod
    def _raise_for_status(url: str, response: requests.Response) -> None:
        if 200 <= response.status_code < 300:
            return
        raise TransportError(f"Request to {url} failed with HTTP {response.status_code}")


__all__ = ["HttpFetcher", "TransportError"]
