"""Tool and resource registration for one protocol server instance.

Every session gets its own ``Server`` built by :func:`create_notes_server`;
all of them share the same :class:`NotesService` and widget bundle.
"""

import logging
from typing import Any, Dict, Optional, Type

from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from pydantic import BaseModel

from .domain import NoteValidationError
from .models import (
    CreateNoteInput,
    EmptyInput,
    NoteIdInput,
    NotesView,
    UpdateNoteInput,
    parse_arguments,
)
from .services import NotesService
from .widget import WIDGET_META, WIDGET_MIME_TYPE, WIDGET_NAME, WIDGET_URI, WidgetBundle

logger = logging.getLogger(__name__)

SERVER_NAME = "notes-server"
SERVER_VERSION = "0.1.0"

WIDGET_TOOL_META = {
    "openai/outputTemplate": WIDGET_URI,
    "openai/widgetAccessible": True,
}


class NoteTool:
    def __init__(self, name: str, title: str, description: str,
                 input_model: Type[BaseModel], meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.title = title
        self.description = description
        self.input_model = input_model
        self.meta = {**WIDGET_TOOL_META, **(meta or {})}

    def definition(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(),
            outputSchema=NotesView.model_json_schema(by_alias=True, mode="serialization"),
            _meta=self.meta,
        )


NOTE_TOOLS = [
    NoteTool(
        "render_notes", "Render Notes", "Render the notes UI", EmptyInput,
        meta={
            "openai/toolInvocation/invoking": "Opening notes…",
            "openai/toolInvocation/invoked": "Notes shown.",
        },
    ),
    NoteTool("list_notes", "List Notes", "List all notes", EmptyInput),
    NoteTool("create_note", "Create Note", "Create a new note with a title and body", CreateNoteInput),
    NoteTool("get_note", "Get Note", "Get a single note by id", NoteIdInput),
    NoteTool("update_note", "Update Note", "Update the title and/or body of a note", UpdateNoteInput),
    NoteTool("delete_note", "Delete Note", "Delete a note by id", NoteIdInput),
]
TOOLS_BY_NAME = {tool.name: tool for tool in NOTE_TOOLS}


async def call_notes_tool(service: NotesService, name: str,
                          arguments: Optional[Dict[str, Any]]) -> NotesView:
    """Validate ``arguments`` for tool ``name`` and run it.

    Raises NoteValidationError before touching the store when input is bad.
    """
    tool = TOOLS_BY_NAME.get(name)
    if tool is None:
        raise ValueError(f"Unknown tool: {name}")
    params = parse_arguments(tool.input_model, arguments)

    if name == "render_notes":
        return await service.render()
    if name == "list_notes":
        return await service.list_notes()
    if name == "create_note":
        return await service.create(params.title, params.body)
    if name == "get_note":
        return await service.get(params.id)
    if name == "update_note":
        return await service.update(params.id, params.to_patch())
    return await service.delete(params.id)


def create_notes_server(service: NotesService, widget: WidgetBundle) -> Server:
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools():
        return [tool.definition() for tool in NOTE_TOOLS]

    @server.call_tool()
    async def call_tool(name: str, arguments: Dict[str, Any]):
        try:
            view = await call_notes_tool(service, name, arguments)
        except NoteValidationError as e:
            logger.warning("Rejected %s: %s", name, e)
            raise
        return [], view.to_structured()

    @server.list_resources()
    async def list_resources():
        return [
            types.Resource(
                uri=WIDGET_URI,
                name=WIDGET_NAME,
                mimeType=WIDGET_MIME_TYPE,
                _meta=WIDGET_META,
            )
        ]

    @server.read_resource()
    async def read_resource(uri):
        if str(uri) != WIDGET_URI:
            raise ValueError(f"Unknown resource: {uri}")
        return [
            ReadResourceContents(
                content=widget.render_html(),
                mime_type=WIDGET_MIME_TYPE,
                meta=WIDGET_META,
            )
        ]

    return server
