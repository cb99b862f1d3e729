import time
from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from lendflow.core import context
from lendflow.core.logging import get_access_logger

logger = get_access_logger()


class RequestContextMiddleware:
    """Attach request_id to context vars and log one access line per request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode() or str(uuid4())
        context.clear_context()
        context.set_request_id(request_id)

        started = time.perf_counter()
        status_holder = {"code": 500}

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                status_holder["code"] = message["status"]
                headers_list = list(message.get("headers", []))
                headers_list.append((b"x-request-id", request_id.encode()))
                message["headers"] = headers_list
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 1)
            logger.info(
                "%s %s -> %s in %.1fms",
                scope.get("method"),
                scope.get("path"),
                status_holder["code"],
                duration_ms,
                extra={
                    "method": scope.get("method"),
                    "path": scope.get("path"),
                    "status_code": status_holder["code"],
                    "duration_ms": duration_ms,
                },
            )
