from typing import Dict, Optional, Union


class _Unset:
    """Marker for a patch field the caller did not supply."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


class Note:
    """Represents a single note object."""

    def __init__(self, id: str, title: str, body: str, created_at: str, updated_at: str):
        self.id = id
        self.title = title
        self.body = body
        self.created_at = created_at
        self.updated_at = updated_at

    def __repr__(self) -> str:
        return f"Note(id={self.id!r}, title={self.title!r}, updated_at={self.updated_at!r})"


class NotePatch:
    """Partial update for a note.

    Each field is either ``UNSET`` (leave the stored value alone) or an
    explicit string. An empty string is an explicit value.
    """

    def __init__(self, title: Union[str, _Unset] = UNSET, body: Union[str, _Unset] = UNSET):
        self.title = title
        self.body = body

    @property
    def is_empty(self) -> bool:
        return self.title is UNSET and self.body is UNSET

    def apply(self, note: Note) -> Dict[str, str]:
        return {
            "title": note.title if self.title is UNSET else self.title,
            "body": note.body if self.body is UNSET else self.body,
        }

    @classmethod
    def from_optional(cls, title: Optional[str] = None, body: Optional[str] = None) -> "NotePatch":
        return cls(
            title=UNSET if title is None else title,
            body=UNSET if body is None else body,
        )


class NoteValidationError(ValueError):
    """A required tool input was missing or blank."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class StoreError(RuntimeError):
    """A write to the notes database failed and was rolled back."""
    pass


class WidgetBundleNotFound(RuntimeError):
    """The compiled widget script could not be located."""

    def __init__(self, filename: str, searched):
        self.filename = filename
        self.searched = list(searched)
        listing = "\n  - ".join(str(p) for p in self.searched)
        super().__init__(
            f"{filename} not found. Did you build the widget?\n"
            f"Run: cd web && npm run build\n"
            f"Searched:\n  - {listing}"
        )
