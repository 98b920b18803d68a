from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .domain import Note, NotePatch, NoteValidationError

InputModel = TypeVar("InputModel", bound=BaseModel)


def _require_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


def _require_id(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


class CreateNoteInput(BaseModel):
    title: str = Field(min_length=1, description="Note title")
    body: Optional[str] = Field(default=None, description="Note body, empty when omitted")

    @field_validator("title")
    @classmethod
    def check_title(cls, value: str) -> str:
        return _require_text(value)


class NoteIdInput(BaseModel):
    id: str = Field(min_length=1, description="Note identifier")

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        return _require_id(value)


class UpdateNoteInput(BaseModel):
    id: str = Field(min_length=1, description="Note identifier")
    title: Optional[str] = Field(default=None, description="New title, unchanged when omitted")
    body: Optional[str] = Field(default=None, description="New body, unchanged when omitted")

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        return _require_id(value)

    @field_validator("title")
    @classmethod
    def check_title(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _require_text(value)

    def to_patch(self) -> NotePatch:
        return NotePatch.from_optional(title=self.title, body=self.body)


class EmptyInput(BaseModel):
    pass


def parse_arguments(model: Type[InputModel], arguments: Optional[Dict[str, Any]]) -> InputModel:
    """Validate raw tool arguments, raising NoteValidationError on the first bad field."""
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "arguments"
        message = "is required" if error["type"] == "missing" else error["msg"]
        raise NoteValidationError(field, message) from e


class NoteSummary(BaseModel):
    id: str
    title: str
    updated_at: str

    @classmethod
    def from_note(cls, note: Note) -> "NoteSummary":
        return cls(id=note.id, title=note.title, updated_at=note.updated_at)


class SelectedNote(BaseModel):
    id: str
    title: str
    body: str
    updated_at: str

    @classmethod
    def from_note(cls, note: Note) -> "SelectedNote":
        return cls(id=note.id, title=note.title, body=note.body, updated_at=note.updated_at)


class NotesView(BaseModel):
    """Read-only projection of the store that the widget renders."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    notes: List[NoteSummary] = Field(default_factory=list)
    selected_id: Optional[str] = Field(default=None, alias="selectedId")
    selected: Optional[SelectedNote] = None

    def to_structured(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
