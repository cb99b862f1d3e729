from __future__ import annotations

import json
from http import HTTPStatus
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response


def _success_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Success"


def envelope(data: Any, message: str) -> dict[str, Any]:
    """Build the success body explicitly when a route wants a specific message."""
    return {"success": True, "message": message, "data": data}


def _build_success_envelope(data: Any, status_code: int) -> dict[str, Any]:
    return envelope(data, _success_message(status_code))


def _is_enveloped(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return "success" in payload and "message" in payload and "data" in payload


def _copy_headers(source: Response, target: Response) -> Response:
    for key, value in source.headers.items():
        if key.lower() in {"content-length", "content-type"}:
            continue
        target.headers[key] = value
    return target


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next) -> Response:
        response = await call_next(request)

        if response.status_code < 200 or response.status_code >= 300:
            return response

        if response.status_code == 204:
            return _copy_headers(
                response, JSONResponse(status_code=200, content=_build_success_envelope(None, 200))
            )

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            return response

        body = b""
        async for chunk in response.body_iterator:
            body += chunk

        try:
            raw_body = body.decode("utf-8")
            payload = json.loads(raw_body) if raw_body else None
        except ValueError:
            return _copy_headers(
                response,
                Response(content=body, status_code=response.status_code, media_type=content_type),
            )

        if _is_enveloped(payload):
            return _copy_headers(
                response, JSONResponse(status_code=response.status_code, content=payload)
            )

        wrapped = _build_success_envelope(payload, response.status_code)
        return _copy_headers(response, JSONResponse(status_code=response.status_code, content=wrapped))


def register_response_envelope(app) -> None:
    app.add_middleware(ResponseEnvelopeMiddleware)
