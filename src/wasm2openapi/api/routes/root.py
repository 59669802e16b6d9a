from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from wasm2openapi.api.routes.openapi import OPENAPI_URL, SWAGGER_UI_URL

router = APIRouter()


@router.get("/")
async def root(request: Request) -> dict[str, Any]:
    """Root discovery endpoint. Lists the function routes and the API description."""
    document = request.app.state.document
    links: dict[str, Any] = {"self": "/", "openapi": OPENAPI_URL}
    if request.app.state.swagger:
        links["swagger-ui"] = SWAGGER_UI_URL
    return {
        "meta": {
            "title": document["info"]["title"],
            "description": document["info"].get("description"),
            "version": document["info"]["version"],
            "policy": request.app.state.dispatcher.policy.value,
        },
        "links": links,
        "functions": [
            {"name": qualified_name, "method": "POST", "path": path}
            for path, qualified_name in request.app.state.function_paths.items()
        ],
    }
