"""Tests for the note tool handlers."""

import pytest

from notes_mcp.backend.domain import NoteValidationError
from notes_mcp.backend.models import UpdateNoteInput, parse_arguments
from notes_mcp.backend.tools import NOTE_TOOLS, TOOLS_BY_NAME, call_notes_tool
from notes_mcp.backend.widget import WIDGET_URI


class TestToolCatalogue:

    def test_six_tools(self):
        assert [t.name for t in NOTE_TOOLS] == [
            "render_notes", "list_notes", "create_note", "get_note", "update_note", "delete_note",
        ]

    def test_every_tool_points_at_widget(self):
        for tool in NOTE_TOOLS:
            assert tool.meta["openai/outputTemplate"] == WIDGET_URI
            assert tool.meta["openai/widgetAccessible"] is True

    def test_render_has_invocation_status(self):
        meta = TOOLS_BY_NAME["render_notes"].meta
        assert meta["openai/toolInvocation/invoking"] == "Opening notes…"
        assert meta["openai/toolInvocation/invoked"] == "Notes shown."

    def test_input_schemas_declare_required_fields(self):
        assert TOOLS_BY_NAME["create_note"].input_model.model_json_schema()["required"] == ["title"]
        assert TOOLS_BY_NAME["update_note"].input_model.model_json_schema()["required"] == ["id"]
        assert TOOLS_BY_NAME["delete_note"].input_model.model_json_schema()["required"] == ["id"]
        assert "required" not in TOOLS_BY_NAME["list_notes"].input_model.model_json_schema()


class TestArgumentParsing:

    def test_missing_required_field(self):
        with pytest.raises(NoteValidationError) as exc:
            parse_arguments(UpdateNoteInput, {})
        assert exc.value.field == "id"
        assert "required" in str(exc.value)

    def test_absent_fields_stay_unset(self):
        patch = parse_arguments(UpdateNoteInput, {"id": "n1", "body": ""}).to_patch()
        assert patch.body == ""
        assert not patch.is_empty
        assert parse_arguments(UpdateNoteInput, {"id": "n1"}).to_patch().is_empty

    def test_null_field_means_absent(self):
        patch = parse_arguments(UpdateNoteInput, {"id": "n1", "title": None}).to_patch()
        assert patch.is_empty


@pytest.mark.asyncio
class TestToolHandlers:

    async def test_groceries_scenario(self, service, store):
        view = await call_notes_tool(service, "create_note", {"title": "Groceries", "body": "milk"})
        assert view.selected.title == "Groceries"
        note_id = view.selected_id
        created_at = view.selected.updated_at

        view = await call_notes_tool(service, "update_note", {"id": note_id, "body": "milk, eggs"})
        assert view.selected.body == "milk, eggs"
        assert view.selected.updated_at > created_at

        await call_notes_tool(service, "delete_note", {"id": note_id})
        view = await call_notes_tool(service, "list_notes", {})
        assert view.notes == []
        assert view.selected is None

    async def test_render_and_list_use_default_selection(self, service, store):
        store.create("older")
        newer = store.create("newer")
        for name in ("render_notes", "list_notes"):
            view = await call_notes_tool(service, name, None)
            assert view.selected_id == newer.id

    async def test_create_trims_title_and_defaults_body(self, service):
        view = await call_notes_tool(service, "create_note", {"title": "  Groceries  "})
        assert view.selected.title == "Groceries"
        assert view.selected.body == ""

    async def test_created_note_is_default_selection(self, service):
        await call_notes_tool(service, "create_note", {"title": "first"})
        created = await call_notes_tool(service, "create_note", {"title": "second"})
        view = await call_notes_tool(service, "list_notes", {})
        assert view.selected_id == created.selected_id

    @pytest.mark.parametrize("arguments", [{}, {"title": ""}, {"title": "   "}, {"body": "x"}])
    async def test_create_rejects_blank_title_before_store_access(self, service, store, arguments):
        with pytest.raises(NoteValidationError) as exc:
            await call_notes_tool(service, "create_note", arguments)
        assert exc.value.field == "title"
        assert store.count() == 0

    async def test_get_selects_note(self, service, store):
        older = store.create("older", "old body")
        store.create("newer")
        view = await call_notes_tool(service, "get_note", {"id": older.id})
        assert view.selected.body == "old body"

    async def test_ids_are_passed_through_unchanged(self, service, store):
        view = await call_notes_tool(service, "get_note", {"id": " padded "})
        assert view.selected_id == " padded "
        params = parse_arguments(UpdateNoteInput, {"id": " padded ", "body": "x"})
        assert params.id == " padded "

    async def test_get_unknown_id_is_soft_absence(self, service, store):
        store.create("only")
        view = await call_notes_tool(service, "get_note", {"id": "missing"})
        assert view.selected_id == "missing"
        assert view.selected is None

    @pytest.mark.parametrize("name", ["get_note", "update_note", "delete_note"])
    async def test_id_is_required(self, service, name):
        with pytest.raises(NoteValidationError):
            await call_notes_tool(service, name, {"id": " "})

    async def test_update_unknown_returns_default_view(self, service, store):
        note = store.create("only")
        view = await call_notes_tool(service, "update_note", {"id": "missing", "title": "x"})
        assert view.selected_id == note.id
        assert store.get(note.id).title == "only"

    async def test_update_without_fields_keeps_timestamp(self, service, store):
        note = store.create("Groceries", "milk")
        view = await call_notes_tool(service, "update_note", {"id": note.id})
        assert view.selected_id == note.id
        assert view.selected.updated_at == note.updated_at

    async def test_update_title_only(self, service, store):
        note = store.create("Groceries", "milk")
        view = await call_notes_tool(service, "update_note", {"id": note.id, "title": "Shopping"})
        assert view.selected.title == "Shopping"
        assert view.selected.body == "milk"

    async def test_update_rejects_blank_title(self, service, store):
        note = store.create("Groceries")
        with pytest.raises(NoteValidationError):
            await call_notes_tool(service, "update_note", {"id": note.id, "title": "  "})
        assert store.get(note.id).title == "Groceries"

    async def test_delete_selected_falls_back_to_next_most_recent(self, service, store):
        first = store.create("first")
        second = store.create("second")
        view = await call_notes_tool(service, "delete_note", {"id": second.id})
        assert view.selected_id == first.id
        view = await call_notes_tool(service, "delete_note", {"id": first.id})
        assert view.selected_id is None

    async def test_delete_unknown_returns_unchanged_view(self, service, store):
        note = store.create("only")
        view = await call_notes_tool(service, "delete_note", {"id": "missing"})
        assert [n.id for n in view.notes] == [note.id]

    async def test_unknown_tool(self, service):
        with pytest.raises(ValueError, match="Unknown tool"):
            await call_notes_tool(service, "archive_note", {})
