"""Error taxonomy.

Load-time errors (``InvalidComponent``, ``UnsupportedType``) abort ``convert``
and ``serve``.  ``RequestError`` subclasses are scoped to one HTTP request and
carry the status code and JSON body the dispatcher answers with.
"""

from __future__ import annotations

from typing import Any


class Wasm2OpenApiError(Exception):
    """Base class for all errors raised by wasm2openapi."""


class InvalidComponent(Wasm2OpenApiError):
    """The binary is not a well-formed component."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.offset = offset
        if offset is not None:
            message = f"{message} (at byte offset {offset})"
        super().__init__(message)


class UnsupportedType(Wasm2OpenApiError):
    """An interface construct has no JSON mapping."""

    def __init__(self, construct: str, function: str | None = None) -> None:
        self.construct = construct
        self.function = function
        where = f" in function '{function}'" if function else ""
        super().__init__(f"Unsupported type construct '{construct}'{where}")


# --- Per-request errors ---


class RequestError(Wasm2OpenApiError):
    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.details()}


class InvalidRequest(RequestError):
    """Wrong content type or a body that is not a JSON object."""

    kind = "InvalidRequest"
    status_code = 400


class RouteNotFound(RequestError):
    """No exported function is served at the requested method and path."""

    kind = "NotFound"
    status_code = 404


def format_path(path: tuple[str | int, ...]) -> str:
    """Render a value path as a JSON pointer (RFC 6901)."""
    return "".join("/" + str(p).replace("~", "~0").replace("/", "~1") for p in path)


class DecodeError(RequestError):
    kind = "DecodeError"
    status_code = 400

    def __init__(self, path: tuple[str | int, ...], expected: str, found: str, message: str | None = None) -> None:
        self.path = path
        self.expected = expected
        self.found = found
        pointer = format_path(path) or "/"
        super().__init__(message or f"Expected {expected} at '{pointer}', found {found}")

    def details(self) -> dict[str, Any]:
        return {"path": format_path(self.path), "expected": self.expected, "found": self.found}


class UnknownResourceHandle(RequestError):
    kind = "UnknownResourceHandle"
    status_code = 400

    def __init__(self, token: str, path: tuple[str | int, ...] = ()) -> None:
        self.token = token
        self.path = path
        super().__init__(f"Unknown resource handle '{token}'")

    def details(self) -> dict[str, Any]:
        return {"path": format_path(self.path), "token": self.token}


class InvocationFault(RequestError):
    """The sandbox trapped, hit an unsupported host call or ran out of resources."""

    kind = "InvocationFault"
    status_code = 500

    def __init__(self, message: str, trap: str | None = None) -> None:
        self.trap = trap
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"trap": self.trap} if self.trap else {}


class InvocationTimeout(RequestError):
    kind = "Timeout"
    status_code = 504

    def __init__(self, function: str, timeout: float) -> None:
        self.function = function
        self.timeout = timeout
        super().__init__(f"Call to '{function}' did not finish within {timeout:g}s")

    def details(self) -> dict[str, Any]:
        return {"timeout": self.timeout}


class InternalError(RequestError):
    kind = "InternalError"
    status_code = 500
