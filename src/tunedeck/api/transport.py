#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, TypeAlias

import httpx
from pydantic import BaseModel, ValidationError

from .exceptions import ResponseError, TransportError

LOG = logging.getLogger(__name__)

HttpMethod: TypeAlias = Literal["get", "post", "put", "delete"]


class Envelope(BaseModel):
    """The `{code, msg, data}` envelope every endpoint answers with."""

    code: int
    msg: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.code == 200

    def raise_for_code(self) -> "Envelope":
        """Raise a `ResponseError` if the envelope reports a failure.

        Returns:
            This envelope, if `code == 200`.
        """
        if not self.ok:
            raise ResponseError(self.code, self.msg, self.data)
        return self

    @classmethod
    def from_json(cls, value: Any) -> "Envelope":
        # Some endpoints answer with the bare payload
        if isinstance(value, dict) and value.get("code") is not None:
            return cls.model_validate(
                {
                    "code": value.get("code"),
                    "msg": value.get("msg") or "",
                    "data": value.get("data"),
                }
            )
        return cls(code=200, data=value)


@dataclass
class TransportArgs:
    path: str
    method: HttpMethod = "get"
    params: dict[str, Any] = field(default_factory=dict)
    json: Optional[Any] = None

    def get_url(self, base_url: str) -> str:
        return base_url.rstrip("/") + "/" + self.path.lstrip("/")

    def get_params(self) -> dict[str, Any]:
        return {k: v for k, v in self.params.items() if v is not None}


class Transport(ABC):
    """Sends one request and returns the decoded envelope.

    Implementations raise `TransportError` for every failure that
    prevents reading an envelope. They never inspect `Envelope.code`.
    """

    @abstractmethod
    async def call(self, args: TransportArgs) -> Envelope:
        """Perform the request described by `args`."""

    async def close(self):
        """Release any resources held by this transport."""


class HttpxTransport(Transport):
    def __init__(
        self,
        api_url: str,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
        _client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self._client = _client or httpx.AsyncClient(
            headers={"Content-Type": "application/json", **(headers or {})},
            timeout=timeout,
        )

    async def call(self, args: TransportArgs) -> Envelope:
        url = args.get_url(self.api_url)
        try:
            response = await self._client.request(
                args.method.upper(),
                url,
                params=args.get_params(),
                json=args.json,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {args.method.upper()} {url}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"{response.reason_phrase or 'HTTP error'}"
                f" (status {response.status_code})",
                status_code=response.status_code,
            )

        try:
            value = response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON in response from {url}",
                status_code=response.status_code,
            ) from e

        LOG.debug("%s %s -> %s", args.method.upper(), url, response.status_code)
        try:
            return Envelope.from_json(value)
        except ValidationError as e:
            raise TransportError(
                f"Malformed response envelope from {url}",
                status_code=response.status_code,
            ) from e

    async def close(self):
        await self._client.aclose()
