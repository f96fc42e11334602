"""HTTP transport and release resolution tests."""
from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import requests

from k3sctl.arch import resolve_arch
from k3sctl.errors import TransportError
from k3sctl.exit_codes import ExitCode
from k3sctl.releases import ReleaseResolver
from k3sctl.transport import HttpFetcher


class FakeResponse:
    """Minimal stand-in for :class:`requests.Response`."""

    def __init__(self, status_code: int = 200, body: bytes = b"", url: str = "") -> None:
        """Store the canned response."""
        self.status_code = status_code
        self.body = body
        self.url = url

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        """Yield the body in chunks."""
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


class FakeSession:
    """Record requests and replay canned responses keyed by URL."""

    def __init__(self, responses: dict[str, FakeResponse]) -> None:
        """Store the canned responses."""
        self.headers: dict[str, str] = {}
        self.responses = responses
        self.calls: list[tuple[str, str]] = []

    def get(self, url: str, **kwargs: object) -> FakeResponse:
        """Return the canned response for *url*."""
        self.calls.append(("GET", url))
        return self._lookup(url)

    def head(self, url: str, **kwargs: object) -> FakeResponse:
        """Return the canned response for *url*."""
        self.calls.append(("HEAD", url))
        return self._lookup(url)

    def _lookup(self, url: str) -> FakeResponse:
        response = self.responses.get(url)
        if response is None:
            raise requests.ConnectionError(f"no route to {url}")
        return response


def _fetcher(responses: dict[str, FakeResponse]) -> tuple[HttpFetcher, FakeSession]:
    session = FakeSession(responses)
    return HttpFetcher(session), session  # type: ignore[arg-type]


def test_download_streams_body_to_destination(tmp_path: Path) -> None:
    """Successful downloads write the full body."""
    body = b"x" * (3 * 1024 * 1024 + 7)
    fetcher, session = _fetcher({"https://h/k3s": FakeResponse(body=body)})

    destination = fetcher.download("https://h/k3s", tmp_path / "k3s.bin")

    assert destination.read_bytes() == body
    assert session.headers["User-Agent"].startswith("k3sctl/")


def test_non_2xx_is_transport_error(tmp_path: Path) -> None:
    """Non-success statuses fail without retry."""
    fetcher, session = _fetcher({"https://h/k3s": FakeResponse(status_code=404)})

    with pytest.raises(TransportError) as excinfo:
        fetcher.download("https://h/k3s", tmp_path / "k3s.bin")

    assert excinfo.value.exit_code is ExitCode.TRANSPORT
    assert "HTTP 404" in str(excinfo.value)
    assert session.calls == [("GET", "https://h/k3s")]


def test_connection_errors_are_wrapped() -> None:
    """Transport exceptions surface as TransportError."""
    fetcher, _ = _fetcher({})

    with pytest.raises(TransportError):
        fetcher.resolve_final_url("https://h/missing")


def test_resolve_final_url_returns_effective_url() -> None:
    """Redirects are followed and the final URL reported."""
    final = "https://h/releases/tag/v1.2.3"
    fetcher, _ = _fetcher({"https://h/releases/latest": FakeResponse(url=final)})

    assert fetcher.resolve_final_url("https://h/releases/latest") == final


def test_release_resolver_uses_pin_verbatim() -> None:
    """A pinned version never touches the network."""
    fetcher, session = _fetcher({})
    resolver = ReleaseResolver(fetcher, "https://h/releases")

    assert resolver.resolve("v0.3.0") == "v0.3.0"
    assert session.calls == []


def test_release_resolver_reads_latest_redirect() -> None:
    """The latest version is the final path segment of the redirect."""
    fetcher, _ = _fetcher(
        {"https://h/releases/latest": FakeResponse(url="https://h/releases/tag/v1.2.3/")}
    )
    resolver = ReleaseResolver(fetcher, "https://h/releases")

    assert resolver.resolve(None) == "v1.2.3"


def test_release_urls() -> None:
    """Asset URLs embed the version and architecture names."""
    fetcher, _ = _fetcher({})
    resolver = ReleaseResolver(fetcher, "https://h/releases")
    arch = resolve_arch("armv7l")

    assert resolver.manifest_url("v1", arch) == "https://h/releases/download/v1/sha256sum-arm.txt"
    assert resolver.binary_url("v1", arch) == "https://h/releases/download/v1/k3s-armhf"
