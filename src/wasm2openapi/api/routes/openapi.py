from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse

from wasm2openapi.api.dependencies import get_document

OPENAPI_URL = "/api-docs/openapi.json"
SWAGGER_UI_URL = "/swagger-ui"

router = APIRouter()
swagger_router = APIRouter()


@router.get(OPENAPI_URL)
async def openapi_document(document: dict[str, Any] = Depends(get_document)) -> dict[str, Any]:
    return document


@swagger_router.get(SWAGGER_UI_URL, response_class=HTMLResponse)
async def swagger_ui(document: dict[str, Any] = Depends(get_document)) -> HTMLResponse:
    return get_swagger_ui_html(openapi_url=OPENAPI_URL, title=f"{document['info']['title']} - Swagger UI")
