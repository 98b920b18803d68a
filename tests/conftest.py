import anyio
import pytest
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from starlette.responses import JSONResponse

from notes_mcp.backend.config import Settings
from notes_mcp.backend.services import NotesService, Storage
from notes_mcp.backend.sessions import SessionRegistry


@pytest.fixture
def store(tmp_path):
    """Fresh notes database in a temporary directory."""
    return Storage(tmp_path / "notes.db")


@pytest.fixture
def service(store):
    return NotesService(store)


@pytest.fixture
def widget_dir(tmp_path):
    """A fake compiled widget bundle."""
    dist = tmp_path / "dist"
    dist.mkdir()
    (dist / "notes.js").write_text("console.log('notes widget');", encoding="utf-8")
    return dist


@pytest.fixture
def settings(tmp_path, widget_dir):
    return Settings(
        data_dir=tmp_path / "data",
        widget_dir=widget_dir,
        json_response=True,
        allowed_hosts=["testserver", "127.0.0.1:*", "localhost:*"],
        allowed_origins=["http://testserver", "http://localhost:*"],
    )


class FakeConnection:
    """Stands in for a protocol transport: echoes each request as JSON."""

    def __init__(self, session_id, registry=None, fail=False):
        self.session_id = session_id
        self.registry = registry
        self.fail = fail
        self.fail_after_start = False
        self.status_code = 200
        self.payload = None
        self.methods = []
        self.released = False
        self.registered_at_release = None
        self._done = anyio.Event()

    @property
    def closed(self):
        return self._done.is_set()

    async def serve(self, *, task_status):
        task_status.started()
        await self._done.wait()

    async def handle_request(self, scope, receive, send):
        self.methods.append(scope["method"])
        if self.fail:
            raise RuntimeError("transport exploded")
        if self.fail_after_start:
            await send({"type": "http.response.start", "status": 200, "headers": []})
            raise RuntimeError("transport exploded mid-response")
        if scope["method"] == "DELETE":
            self._done.set()
        response = JSONResponse(
            self.payload or {"session": self.session_id, "method": scope["method"]},
            status_code=self.status_code,
            headers={MCP_SESSION_ID_HEADER: self.session_id},
        )
        await response(scope, receive, send)

    def drop(self):
        """Simulate the transport closing underneath the registry."""
        self._done.set()

    async def close(self):
        if self.registry is not None and self.registered_at_release is None:
            self.registered_at_release = self.session_id in self.registry.session_ids
        self.released = True
        self._done.set()


@pytest.fixture
def fake_registry():
    connections = {}
    registry = None

    def factory(session_id):
        connection = FakeConnection(session_id, registry)
        for name, value in registry.connection_defaults.items():
            setattr(connection, name, value)
        connections[session_id] = connection
        return connection

    registry = SessionRegistry(factory)
    registry.connections = connections
    registry.connection_defaults = {}
    return registry
