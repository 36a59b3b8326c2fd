#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import inspect
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from tunedeck.api.client import Client
from tunedeck.api.models import Job, JobStatus
from tunedeck.api.transport import HttpxTransport

API_URL = "https://api.test/proxy"

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def ok(data: Any = None, msg: str = "success") -> dict[str, Any]:
    return {"code": 200, "msg": msg, "data": data}


def fail(code: int, msg: str) -> dict[str, Any]:
    return {"code": code, "msg": msg, "data": None}


def make_job(
    job_id: str,
    status: JobStatus | str = JobStatus.running,
    minutes: Optional[int] = 0,
    **kwargs: Any,
) -> Job:
    """Create a job created `minutes` after T0."""
    status = JobStatus(status)
    kwargs.setdefault("raw_status", status.value)
    return Job(
        id=job_id,
        status=status,
        created_at=T0 + timedelta(minutes=minutes) if minutes is not None else None,
        **kwargs,
    )


class MockApi:
    """Answers requests with canned responses keyed by
    `"<METHOD> <path>"`, the path relative to the API URL.

    A response may be a JSON value, an `httpx.Response`, or a
    function of the request returning one of these, possibly
    asynchronously. Unknown paths answer with HTTP 404.
    """

    def __init__(self, routes: Optional[dict[str, Any]] = None):
        self.routes: dict[str, Any] = dict(routes or {})
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        prefix = httpx.URL(API_URL).path.rstrip("/") + "/"
        path = request.url.path.removeprefix(prefix)
        response = self.routes.get(f"{request.method} {path}")
        if response is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        if callable(response):
            response = response(request)
            if inspect.isawaitable(response):
                response = await response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def count(self, method: str, path: str) -> int:
        prefix = httpx.URL(API_URL).path.rstrip("/") + "/"
        return sum(
            1
            for r in self.requests
            if r.method == method and r.url.path.removeprefix(prefix) == path
        )

    def transport(self) -> HttpxTransport:
        return HttpxTransport(
            API_URL,
            _client=httpx.AsyncClient(transport=httpx.MockTransport(self)),
        )

    def client(self, **config: Any) -> Client:
        return Client(api_url=API_URL, _transport=self.transport(), **config)
