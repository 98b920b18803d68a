import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from mcp.server.transport_security import TransportSecuritySettings

from .config import Settings
from .services import NotesService, Storage
from .sessions import McpConnection, SessionRegistry
from .tools import create_notes_server
from .transport import SessionFrontDoor
from .utils import time_now
from .widget import WidgetBundle

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stderr)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the notes server app.

    Fails with WidgetBundleNotFound when the compiled widget is missing.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)

    widget = WidgetBundle.locate(settings.widget_dir)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    store = Storage(settings.db_path)
    service = NotesService(store)

    security = None
    if settings.dns_rebinding_protection:
        security = TransportSecuritySettings(
            enable_dns_rebinding_protection=True,
            allowed_hosts=settings.allowed_hosts,
            allowed_origins=settings.allowed_origins,
        )

    def open_connection(session_id: str) -> McpConnection:
        return McpConnection(
            session_id,
            create_notes_server(service, widget),
            json_response=settings.json_response,
            security_settings=security,
        )

    registry = SessionRegistry(open_connection)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Notes server starting up...")
        logger.info("Database: %s (%d notes)", settings.db_path, store.count())
        logger.info("MCP endpoint: http://%s:%d/mcp", settings.host, settings.port)
        async with registry.run():
            yield
        logger.info("Notes server shut down")

    app = FastAPI(
        title="Notes MCP Server",
        description="Note-taking tools and widget served over session-scoped MCP",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[MCP_SESSION_ID_HEADER],
    )

    app.state.settings = settings
    app.state.store = store
    app.state.registry = registry
    app.add_route("/mcp", SessionFrontDoor(registry, settings.max_body_bytes),
                  methods=["GET", "POST", "DELETE"])

    @app.get("/", response_class=PlainTextResponse)
    async def read_root():
        return "OK"

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": time_now(),
            "active_sessions": len(registry),
            "notes_count": store.count(),
        }

    return app


def run() -> None:
    settings = Settings()
    uvicorn.run(
        "notes_mcp.backend.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    run()
