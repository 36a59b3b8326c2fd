#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from typing import Any, Optional


class ClientError(Exception):
    """Base class of all errors raised by the API client.

    Args:
        message: The error message.
        status_code: HTTP status code, if one is known.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(ClientError):
    """The request did not produce a usable response:
    connection failure, timeout, HTTP status other than 2xx,
    or a body that is not valid JSON.
    """


class ResponseError(ClientError):
    """The server answered, but its envelope reports a failure,
    that is, `code != 200` in an otherwise successful HTTP response.

    Args:
        code: The application-level code from the envelope.
        msg: The server message, to be shown to users verbatim.
        data: Optional envelope payload.
    """

    def __init__(self, code: int, msg: str, data: Any = None):
        super().__init__(msg or f"Request failed with code {code}")
        self.code = code
        self.msg = msg
        self.data = data
