# app/middlewares/body_limit.py
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.platform.config import settings
from app.platform.exceptions import FailureKind, error_payload
from app.platform.response import api_response


def _body_too_large_message() -> str:
    return f"Request body exceeds {settings.MAX_REQUEST_BODY_KB}KB"


class BodySizeLimitMiddleware:
    """
    Caps request bodies at settings.MAX_REQUEST_BODY_KB.

    A declared Content-Length over the cap is refused before anything is
    read. Bodies without one (chunked uploads) are counted as they are
    received, and the read fails with 413 once the count goes over.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = settings.MAX_REQUEST_BODY_KB * 1024

        declared = Headers(scope=scope).get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            response = api_response(
                status_code=413,
                message=_body_too_large_message(),
                data=error_payload(FailureKind.PAYLOAD_TOO_LARGE, "body"),
            )
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    # FastAPI re-raises HTTPException from body reads; the app handler renders it
                    raise HTTPException(status_code=413, detail=_body_too_large_message())
            return message

        await self.app(scope, limited_receive, send)
