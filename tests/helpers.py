"""
Network stubs shared by the test modules.

httpx.MockTransport routes keyed by (method, url); every request is recorded
so tests can assert how many outbound calls were made.
"""

import json
from typing import Any, Callable, Dict, List, Tuple

import httpx

QUOTES_URL = "https://quotes.test/quotes/random"
TARGET_URL = "https://sink.test/quotes"

Route = Callable[[httpx.Request], httpx.Response]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, routes: Dict[Tuple[str, str], Route]):
        self.routes = routes
        self.requests: List[httpx.Request] = []
        super().__init__(self._dispatch)

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, str(request.url)))
        if route is None:
            return httpx.Response(404, json={"message": "no route"})
        return route(request)

    def calls(self, method: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method]


def json_route(status_code: int, payload: Any) -> Route:
    return lambda request: httpx.Response(status_code, json=payload)


def echo_route(status_code: int = 201) -> Route:
    """Sink stub that echoes the posted quote back."""
    def route(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"saved": True, "received": json.loads(request.content)})
    return route
