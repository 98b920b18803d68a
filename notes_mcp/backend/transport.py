"""HTTP front door for the session protocol endpoint.

POST requests are routed by the ``mcp-session-id`` header:

    known id                -> forward to that session
    unknown id              -> 400, invalid session
    no id + initialize body -> open a session, forward; drop it again
                               if the transport refuses the initialize
    no id + anything else   -> 400, missing session id

GET and DELETE always need a known id.
"""

import json
import logging
from typing import Any, Optional, Tuple

from mcp import types
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.types import Message, Receive, Scope, Send

from .sessions import SessionConnection, SessionRegistry

logger = logging.getLogger(__name__)

NO_VALID_SESSION = "Bad Request: No valid session ID provided"
INVALID_OR_MISSING_SESSION = "Invalid or missing session ID"


def jsonrpc_error(code: int, message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": None},
        status_code=status_code,
    )


def is_initialize_request(payload: Any) -> bool:
    try:
        message = types.JSONRPCMessage.model_validate(payload)
    except ValidationError:
        return False
    return isinstance(message.root, types.JSONRPCRequest) and message.root.method == "initialize"


def initialize_succeeded(status: Optional[int], body: bytes) -> bool:
    """True when the initialize response was 2xx and carried no JSON-RPC error.

    ``body`` is either a JSON document or an SSE stream of ``data:`` lines.
    """
    if status is None or not 200 <= status < 300:
        return False
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return True
    if text.startswith("{"):
        documents = [text]
    else:
        documents = [line[5:].strip() for line in text.splitlines() if line.startswith("data:")]
    for document in documents:
        try:
            message = json.loads(document)
        except ValueError:
            continue
        if isinstance(message, dict) and "error" in message:
            return False
    return True


def replay_body(body: bytes, receive: Receive) -> Receive:
    """Return a receive callable that yields an already-read body once."""
    replayed = False

    async def _receive() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return _receive


class SessionFrontDoor:
    """ASGI endpoint that dispatches protocol requests to their session."""

    def __init__(self, registry: SessionRegistry, max_body_bytes: int = 5 * 1024 * 1024):
        self.registry = registry
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        if request.method == "POST":
            await self._handle_post(request, scope, send)
        elif request.method in ("GET", "DELETE"):
            await self._handle_session_request(request, scope, receive, send)
        else:
            response = PlainTextResponse(
                "Method Not Allowed", status_code=405, headers={"Allow": "GET, POST, DELETE"}
            )
            await response(scope, receive, send)

    async def _read_body(self, request: Request) -> Optional[bytes]:
        """Read the request body, or return None once it grows past the limit."""
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            return None
        chunks = []
        size = 0
        async for chunk in request.stream():
            size += len(chunk)
            if size > self.max_body_bytes:
                return None
            chunks.append(chunk)
        return b"".join(chunks)

    async def _handle_post(self, request: Request, scope: Scope, send: Send) -> None:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)

        body = await self._read_body(request)
        if body is None:
            await self._reject(jsonrpc_error(-32000, "Request body too large", 413), request, send)
            return

        receive = replay_body(body, request.receive)

        if session_id:
            connection = self.registry.get(session_id)
            if connection is None:
                logger.warning("POST for unknown session: %s", session_id)
                await self._reject(jsonrpc_error(-32000, NO_VALID_SESSION), request, send)
                return
            await self._forward(connection, scope, receive, send)
            return

        try:
            payload = json.loads(body)
        except ValueError:
            await self._reject(jsonrpc_error(-32700, "Parse error: Invalid JSON"), request, send)
            return

        if not is_initialize_request(payload):
            logger.warning("POST without session id for non-initialize request")
            await self._reject(jsonrpc_error(-32000, NO_VALID_SESSION), request, send)
            return

        try:
            connection = await self.registry.open()
        except Exception:
            logger.exception("Failed to open session")
            await self._reject(JSONResponse({"error": "mcp transport error"}, status_code=500), request, send)
            return
        status, response_body = await self._forward(connection, scope, receive, send, capture=True)
        if not initialize_succeeded(status, response_body):
            logger.warning("Initialize rejected (status %s), dropping session %s",
                           status, connection.session_id)
            await self.registry.close(connection.session_id)

    async def _handle_session_request(self, request: Request, scope: Scope,
                                      receive: Receive, send: Send) -> None:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        connection = self.registry.get(session_id)
        if connection is None:
            logger.warning("%s for invalid or missing session: %s", request.method, session_id)
            await PlainTextResponse(INVALID_OR_MISSING_SESSION, status_code=400)(scope, receive, send)
            return

        await self._forward(connection, scope, receive, send)
        if request.method == "DELETE" and connection.closed:
            await self.registry.close(connection.session_id)

    async def _forward(self, connection: SessionConnection, scope: Scope,
                       receive: Receive, send: Send,
                       capture: bool = False) -> Tuple[Optional[int], bytes]:
        """Pass the request to ``connection``; returns the response status and, if captured, body."""
        status = None
        captured = []

        async def tracking_send(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            elif capture and message["type"] == "http.response.body":
                captured.append(message.get("body", b""))
            await send(message)

        try:
            await connection.handle_request(scope, receive, tracking_send)
        except Exception:
            if status is not None:
                logger.exception("Transport error after response started (session %s)",
                                 connection.session_id)
                return status, b"".join(captured)
            logger.exception("Transport error (session %s)", connection.session_id)
            await JSONResponse({"error": "mcp transport error"}, status_code=500)(scope, receive, send)
            return 500, b""
        return status, b"".join(captured)

    @staticmethod
    async def _reject(response: Response, request: Request, send: Send) -> None:
        await response(request.scope, request.receive, send)
