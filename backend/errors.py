"""Error taxonomy for route building.

Every failure raised by the route composition engine or a provider adapter
is a ``RoutingError``. Providers attach their name, and ``build_route``
attaches the index of the window that failed, so a multi-window failure
can be diagnosed from the message alone.
"""

from typing import Any


class RoutingError(Exception):
    """Base class for route building failures."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        window_index: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.window_index = window_index

    def __str__(self) -> str:
        context = []
        if self.provider:
            context.append(self.provider)
        if self.window_index is not None:
            context.append(f"window {self.window_index}")
        if context:
            return f"[{', '.join(context)}] {self.message}"
        return self.message


class InvalidRequestError(RoutingError):
    """The route request is malformed (e.g. fewer than two points)."""


class RoutingProviderError(RoutingError):
    """The provider answered with an HTTP error or an explicit error message."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        window_index: int | None = None,
        status_code: int | None = None,
        body: Any = None,
    ):
        super().__init__(message, provider=provider, window_index=window_index)
        self.status_code = status_code
        # Decoded JSON error body, when the provider sent one.
        self.body = body


class NoRouteFoundError(RoutingError):
    """The provider answered successfully but returned no usable path."""


class NetworkError(RoutingError):
    """The request failed before any HTTP reply arrived."""
