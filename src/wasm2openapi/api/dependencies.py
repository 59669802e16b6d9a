from __future__ import annotations

from typing import Any

from fastapi import Request

from wasm2openapi.api.dispatcher import InvocationDispatcher


def get_dispatcher(request: Request) -> InvocationDispatcher:
    return request.app.state.dispatcher


def get_document(request: Request) -> dict[str, Any]:
    """The OpenAPI document, built once when the app was created."""
    return request.app.state.document
