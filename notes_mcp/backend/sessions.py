"""Session registry: binds session ids to live protocol connections.

A session moves absent -> active -> closed exactly once. The registry is the
only owner of the id -> connection mapping; the front door looks sessions up
per request and never keeps a reference past that request.
"""

import contextlib
import logging
from typing import Callable, Dict, List, Optional, Protocol

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server.lowlevel import Server
from mcp.server.streamable_http import StreamableHTTPServerTransport
from mcp.server.transport_security import TransportSecuritySettings
from starlette.types import Receive, Scope, Send

from .utils import make_id

logger = logging.getLogger(__name__)


class SessionConnection(Protocol):
    session_id: str

    @property
    def closed(self) -> bool: ...

    async def serve(self, *, task_status: TaskStatus) -> None:
        """Run until the connection closes, calling ``task_status.started()`` once ready."""

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None: ...

    async def close(self) -> None: ...


class McpConnection:
    """One streamable-HTTP transport wired to its own protocol server."""

    def __init__(self, session_id: str, server: Server, json_response: bool = False,
                 security_settings: Optional[TransportSecuritySettings] = None):
        self.session_id = session_id
        self.server = server
        self.transport = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=json_response,
            security_settings=security_settings,
        )

    @property
    def closed(self) -> bool:
        return self.transport.is_terminated

    async def serve(self, *, task_status: TaskStatus = anyio.TASK_STATUS_IGNORED) -> None:
        async with self.transport.connect() as (read_stream, write_stream):
            task_status.started()
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
                stateless=False,
            )

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.transport.handle_request(scope, receive, send)

    async def close(self) -> None:
        if not self.transport.is_terminated:
            await self.transport.terminate()


ConnectionFactory = Callable[[str], SessionConnection]


class SessionRegistry:
    """Owns every active session and the task group their connections run in.

    ``run()`` must be entered (normally from the app lifespan) before
    sessions can be opened.
    """

    def __init__(self, connection_factory: ConnectionFactory,
                 id_factory: Callable[[], str] = make_id):
        self._connection_factory = connection_factory
        self._id_factory = id_factory
        self._sessions: Dict[str, SessionConnection] = {}
        self._task_group: Optional[TaskGroup] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    @property
    def session_ids(self) -> List[str]:
        return list(self._sessions)

    @contextlib.asynccontextmanager
    async def run(self):
        if self._task_group is not None:
            raise RuntimeError("SessionRegistry is already running")
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield self
            finally:
                with anyio.CancelScope(shield=True):
                    await self.close_all()
                tg.cancel_scope.cancel()
                self._task_group = None

    def get(self, session_id: Optional[str]) -> Optional[SessionConnection]:
        if not session_id:
            return None
        connection = self._sessions.get(session_id)
        if connection is not None and connection.closed:
            self._sessions.pop(session_id, None)
            logger.info("Session closed: %s", session_id)
            return None
        return connection

    async def open(self) -> SessionConnection:
        """Create a session and register it before any request reaches it."""
        if self._task_group is None:
            raise RuntimeError("SessionRegistry is not running")

        session_id = self._id_factory()
        if session_id in self._sessions:
            raise RuntimeError(f"Duplicate session id generated: {session_id}")
        connection = self._connection_factory(session_id)
        await self._task_group.start(self._serve, connection)
        self._sessions[session_id] = connection
        logger.info("Session initialized: %s", session_id)
        return connection

    async def close(self, session_id: str) -> bool:
        """Terminate a session. Returns False when the id is not active."""
        connection = self._sessions.get(session_id)
        if connection is None:
            return False
        await self._release(connection)
        return True

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    async def _serve(self, connection: SessionConnection, *,
                     task_status: TaskStatus = anyio.TASK_STATUS_IGNORED) -> None:
        try:
            await connection.serve(task_status=task_status)
        except Exception:
            logger.exception("Session %s crashed", connection.session_id)
        finally:
            with anyio.CancelScope(shield=True):
                await self._release(connection)

    async def _release(self, connection: SessionConnection) -> None:
        # Connection resources go first so nothing is forwarded to a dead transport.
        await connection.close()
        if self._sessions.get(connection.session_id) is connection:
            del self._sessions[connection.session_id]
            logger.info("Session closed: %s", connection.session_id)
