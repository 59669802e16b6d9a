"""Build the OpenAPI document describing a component's exported functions."""

from __future__ import annotations

import re
from typing import Any

from wasm2openapi.core.type_mapper import TypeMapper
from wasm2openapi.errors import (
    DecodeError,
    InternalError,
    InvalidRequest,
    InvocationFault,
    InvocationTimeout,
    RouteNotFound,
    UnknownResourceHandle,
)
from wasm2openapi.models import ComponentInterface, FunctionDescriptor

OPENAPI_VERSION = "3.1.0"

DEFAULT_INFO = {
    "title": "WASM Component API",
    "version": "1.0",
    "description": "OpenAPI definition of a WASM component.",
}

ERROR_SCHEMA_KEY = "Error"

ERROR_KINDS = [
    InvalidRequest.kind,
    RouteNotFound.kind,
    DecodeError.kind,
    UnknownResourceHandle.kind,
    InvocationFault.kind,
    InvocationTimeout.kind,
    InternalError.kind,
]

ERROR_SCHEMA: dict[str, Any] = {
    "type": "object",
    "title": "Error",
    "properties": {
        "kind": {"type": "string", "enum": ERROR_KINDS},
        "message": {"type": "string"},
        "path": {"type": "string", "description": "JSON pointer to the offending part of the request body."},
        "expected": {"type": "string"},
        "found": {"type": "string"},
        "token": {"type": "string"},
        "trap": {"type": "string"},
        "timeout": {"type": "number"},
    },
    "required": ["kind", "message"],
}

ERROR_RESPONSES = {
    "400": "Malformed request, argument that does not match its type, or unknown resource handle.",
    "500": "The component trapped or the host failed.",
    "504": "The call did not finish within the deadline.",
}

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lower-case URL path segment: runs of anything but ``[a-z0-9]`` become ``-``."""
    return _SLUG_INVALID.sub("-", name.lower()).strip("-") or "fn"


def function_paths(iface: ComponentInterface) -> dict[str, FunctionDescriptor]:
    """Route path per function, in export order; colliding slugs get a numeric suffix."""
    paths: dict[str, FunctionDescriptor] = {}
    for fn in iface.functions:
        base = "/" + slugify(fn.name)
        if fn.interface:
            base = "/" + slugify(fn.interface) + base
        path, n = base, 2
        while path in paths:
            path = f"{base}-{n}"
            n += 1
        paths[path] = fn
    return paths


def operation_id(path: str) -> str:
    return path.strip("/").replace("/", "-")


def split_docs(docs: str | None) -> tuple[str | None, str | None]:
    """First line becomes the summary, the rest the description."""
    if not docs or not docs.strip():
        return None, None
    summary, _, rest = docs.strip().partition("\n")
    return summary.strip(), rest.strip() or None


def _json_content(schema: dict[str, Any]) -> dict[str, Any]:
    return {"application/json": {"schema": schema}}


def _object_schema(keys: list[str], schemas: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": dict(zip(keys, schemas)),
        "required": list(keys),
        "additionalProperties": False,
    }


def build_operation(mapper: TypeMapper, fn: FunctionDescriptor, path: str) -> dict[str, Any]:
    params = _object_schema(fn.param_keys(), [mapper.map_type(p.type) for p in fn.params])
    results = _object_schema(fn.result_keys(), [mapper.map_type(r.type) for r in fn.results])

    operation: dict[str, Any] = {"operationId": operation_id(path)}
    summary, description = split_docs(fn.docs)
    if summary:
        operation["summary"] = summary
    if description:
        operation["description"] = description
    if fn.interface:
        operation["tags"] = [fn.interface]
    operation["requestBody"] = {"required": True, "content": _json_content(params)}
    error_content = _json_content({"$ref": f"#/components/schemas/{ERROR_SCHEMA_KEY}"})
    operation["responses"] = {
        "200": {"description": "The function's results.", "content": _json_content(results)},
        **{status: {"description": text, "content": error_content} for status, text in ERROR_RESPONSES.items()},
    }
    return operation


def build_document(
    iface: ComponentInterface,
    servers: list[str] | None = None,
    info: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Pure function of ``iface``: the same interface always yields an equal document."""
    mapper = TypeMapper(iface.definitions)
    paths = {
        path: {"post": build_operation(mapper, fn, path)} for path, fn in function_paths(iface).items()
    }
    document_info = dict(DEFAULT_INFO)
    if iface.docs:
        document_info["description"] = iface.docs
    document_info.update(info or {})

    document: dict[str, Any] = {"openapi": OPENAPI_VERSION, "info": document_info}
    if servers:
        document["servers"] = [{"url": url} for url in servers]
    document["paths"] = paths
    document["components"] = {"schemas": {**mapper.schemas, ERROR_SCHEMA_KEY: ERROR_SCHEMA}}
    return document
