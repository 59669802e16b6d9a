from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from wasm2openapi.api.dispatcher import InvocationDispatcher
from wasm2openapi.api.lifespan import lifespan
from wasm2openapi.api.routes.health import router as health_router
from wasm2openapi.api.routes.openapi import router as openapi_router
from wasm2openapi.api.routes.openapi import swagger_router
from wasm2openapi.api.routes.root import router as root_router
from wasm2openapi.api.schemas import ErrorResponse
from wasm2openapi.core.ports.runtime import ComponentRuntime
from wasm2openapi.core.schema import build_document, function_paths, operation_id
from wasm2openapi.errors import RequestError, RouteNotFound
from wasm2openapi.models import ComponentInterface
from wasm2openapi.settings import Settings

logger = logging.getLogger(__name__)


async def request_error_handler(_request: Request, exc: RequestError) -> JSONResponse:
    body = ErrorResponse(**exc.to_dict()).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=exc.status_code)


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> Response:
    # Unknown paths and non-POST methods on a function path get the same body
    if exc.status_code in (404, 405):
        error = RouteNotFound(f"No operation for {request.method} {request.url.path}")
        return await request_error_handler(request, error)
    return await http_exception_handler(request, exc)


def create_app(
    iface: ComponentInterface,
    runtime: ComponentRuntime,
    settings: Settings | None = None,
    swagger: bool = False,
    document: dict[str, Any] | None = None,
) -> FastAPI:
    settings = settings or Settings()
    if document is None:
        document = build_document(iface, servers=[settings.base_url])

    # The component's own document replaces FastAPI's generated one
    app = FastAPI(
        title=document["info"]["title"],
        version=document["info"]["version"],
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    dispatcher = InvocationDispatcher(iface, runtime, policy=settings.policy, timeout=settings.timeout)
    paths = function_paths(iface)

    app.state.settings = settings
    app.state.document = document
    app.state.dispatcher = dispatcher
    app.state.swagger = swagger
    app.state.function_paths = {path: fn.qualified_name for path, fn in paths.items()}

    app.add_exception_handler(RequestError, request_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, not_found_handler)  # type: ignore[arg-type]

    app.include_router(root_router)
    app.include_router(health_router)
    app.include_router(openapi_router)
    if swagger:
        app.include_router(swagger_router)

    for path, fn in paths.items():
        app.add_api_route(
            path,
            dispatcher.route(fn),
            methods=["POST"],
            name=operation_id(path),
            include_in_schema=False,
        )
        logger.debug("POST %s -> %s", path, fn.qualified_name)

    return app
