"""CORS for the chat widget.

The allowed origin header is always one of the configured origins: the
caller's own origin when it is listed, otherwise the first configured one.
Unknown origins are not rejected; the browser simply refuses to read a
response addressed to another origin.
"""
from typing import Any, Dict, Optional, Sequence

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from pierre_chat.config import Settings, get_settings

ALLOW_METHODS = "POST, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"


def pick_origin(origin: Optional[str], allowed: Sequence[str]) -> str:
    if origin and origin in allowed:
        return origin
    return allowed[0]


def cors_headers(origin: Optional[str], settings: Settings) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": pick_origin(origin, settings.allowed_origins),
        "Vary": "Origin",
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
    }


def json_response(status: int, payload: Any, origin: Optional[str], settings: Settings) -> JSONResponse:
    headers = cors_headers(origin, settings)
    headers["Content-Type"] = JSON_CONTENT_TYPE
    return JSONResponse(payload, status_code=status, headers=headers)


def preflight_response(origin: Optional[str], settings: Settings) -> Response:
    return Response(status_code=204, headers=cors_headers(origin, settings))


def request_settings(request: Request) -> Settings:
    """Settings as the routes see them, honouring dependency overrides."""
    provider = request.app.dependency_overrides.get(get_settings, get_settings)
    return provider()
