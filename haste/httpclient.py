"""Minimal asynchronous HTTP client interface used to fetch broadcasts."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Union

__all__ = ["HttpClient", "HttpRequest", "HttpResponse"]


@dataclass(frozen=True)
class HttpRequest:
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass(frozen=True)
class HttpResponse:
    """A response whose body may have failed to arrive.

    Servers sometimes announce an encoding they did not apply, so reading
    the body can fail while the status line is fine; in that case ``body``
    holds the exception.
    """

    status: int
    body: Union[bytes, BaseException] = b""
    headers: dict[str, str] = field(default_factory=dict)

    def is_error(self) -> bool:
        """True for client (4xx) and server (5xx) error statuses."""
        return 400 <= self.status < 600


class HttpClient(abc.ABC):
    """Executes HTTP requests."""

    @abc.abstractmethod
    async def execute(self, request: HttpRequest) -> HttpResponse:
        """Send ``request`` and return the response; raise on transport errors."""