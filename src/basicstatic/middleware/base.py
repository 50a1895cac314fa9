"""
=============================================================================
MIDDLEWARE
=============================================================================

Code that runs around the handler for every request:

    request ──► LoggingMiddleware ──► ... ──► StaticFileHandler
                                                     │
    response ◄── LoggingMiddleware ◄── ... ◄─────────┘

Each middleware receives the request and `next`, the rest of the chain.
It may change the request, call next(request), inspect or decorate the
response, or answer without calling next at all.

A streamed response passes through middleware before its body is read,
so middleware sees headers and the declared Content-Length only.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """Base class: implement __call__(request, next) -> response."""

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Ordered middleware list that can wrap a handler.

    The first middleware added is the outermost:

        pipeline.add(A).add(B)
        pipeline.wrap(handler)(request)    # A → B → handler → B → A
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        current = handler
        for middleware in reversed(self._middleware):
            current = self._bind(middleware, current)
        return current

    @staticmethod
    def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        # A closure per layer; a lambda in the loop would capture the last one
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
