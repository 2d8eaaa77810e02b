import os
from collections.abc import Callable, Generator
from typing import Any

import httpx
import pytest

# Keep pytest output high-signal by disabling outbound Sentry capture in tests.
os.environ["SENTRY_DSN"] = ""

from siteaudit.core import metrics


ORIGIN = "https://www.example.com"


class FakeSite:
    """In-memory site served through httpx.MockTransport.

    Routes are keyed by ``scheme://host/path`` (no query); paths starting with
    ``/`` are resolved against ``ORIGIN``.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[tuple[int, str | None]]] = {}
        self.documents: dict[str, Any] = {}
        self.failing: dict[str, tuple[type[httpx.TransportError], str]] = {}
        self.requests: list[httpx.Request] = []

    @staticmethod
    def _key(url: str) -> str:
        return f"{ORIGIN}{url}" if url.startswith("/") else url

    def redirect(self, url: str, location: str, status: int = 301) -> "FakeSite":
        self.routes.setdefault(self._key(url), []).append((status, location))
        return self

    def page(self, url: str, status: int = 200) -> "FakeSite":
        self.routes.setdefault(self._key(url), []).append((status, None))
        return self

    def document(self, url: str, doc: Any | Callable[[httpx.Request], Any]) -> "FakeSite":
        self.documents[self._key(url)] = doc
        return self

    def fail(
        self,
        url: str,
        error: type[httpx.TransportError] = httpx.ConnectError,
        message: str = "connection refused",
    ) -> "FakeSite":
        self.failing[self._key(url)] = (error, message)
        return self

    def hits(self, url: str) -> int:
        key = self._key(url)
        return sum(1 for req in self.requests if f"{req.url.scheme}://{req.url.host}{req.url.path}" == key)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        if key in self.failing:
            error, message = self.failing[key]
            raise error(message, request=request)
        if key in self.documents:
            doc = self.documents[key]
            if callable(doc):
                doc = doc(request)
            return httpx.Response(200, json=doc)
        answers = self.routes.get(key)
        if not answers:
            return httpx.Response(404)
        # Each answer is served once, the last one forever after.
        status, location = answers.pop(0) if len(answers) > 1 else answers[0]
        headers = {"Location": location} if location else {}
        return httpx.Response(status, headers=headers)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_metrics() -> Generator[None, None, None]:
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()
