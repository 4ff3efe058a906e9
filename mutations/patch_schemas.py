"""
Field contracts of the two patch grammars.

Entries are validated with pydantic; ``model_fields_set`` tells which fields the
client actually supplied, so updates never overwrite a column with a default.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple
from datetime import datetime
from models.boards import BoardTheme
from models.cards import CardPriority


HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
# "link" or a MIME category such as "image" or "application/pdf"
ATTACHMENT_TYPE_PATTERN = r"^(link|[A-Za-z0-9][A-Za-z0-9.+-]*(/[A-Za-z0-9][A-Za-z0-9.+-]*)?)$"


class _Contract(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)

    # Fields that may be omitted but never set to null.
    non_nullable: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        for name in self.non_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                alias = type(self).model_fields[name].alias or name
                raise ValueError(f"{alias} cannot be null")
        return self

    def supplied_fields(self, exclude: Tuple[str, ...] = ()) -> Dict[str, Any]:
        """Return only the fields present in the payload, keyed by model attribute name."""
        names = self.model_fields_set - set(exclude)
        return {name: getattr(self, name) for name in names}


class BoardFieldsPatch(_Contract):
    """Top-level board fields."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    theme: Optional[BoardTheme] = None
    is_public: Optional[bool] = Field(default=None, alias="isPublic", strict=True)

    non_nullable = ("title", "theme", "is_public")


class EntityPatch(_Contract):
    """List entry keyed by ``id``; ``_delete: true`` turns it into a delete intent."""
    id: str = Field(..., min_length=1)
    delete: bool = Field(default=False, alias="_delete", strict=True)

    create_required: ClassVar[Tuple[str, ...]] = ()

    def payload_fields(self) -> Dict[str, Any]:
        return self.supplied_fields(exclude=("id", "delete"))

    def missing_for_create(self) -> List[str]:
        supplied = self.payload_fields()
        return [
            type(self).model_fields[name].alias or name
            for name in self.create_required
            if supplied.get(name) is None
        ]


class ColumnPatch(EntityPatch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    width: Optional[float] = Field(default=None, gt=0)
    order: Optional[int] = Field(default=None, ge=0, strict=True)

    non_nullable = ("title", "width", "order")
    create_required = ("title",)


class CardPatch(EntityPatch):
    column_id: Optional[str] = Field(default=None, alias="columnId", min_length=1)
    order: Optional[int] = Field(default=None, ge=0, strict=True)
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[CardPriority] = None
    weight: Optional[int] = Field(default=None, ge=0, strict=True)
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    labels: Optional[List[str]] = None
    assignees: Optional[List[str]] = None

    non_nullable = ("column_id", "order", "title", "description", "priority", "labels", "assignees")
    create_required = ("column_id", "title")


class LabelPatch(EntityPatch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)

    non_nullable = ("name", "color")
    create_required = ("name", "color")


class CommentPatch(EntityPatch):
    card_id: Optional[str] = Field(default=None, alias="cardId", min_length=1)
    content: Optional[str] = Field(default=None, min_length=1)

    non_nullable = ("card_id", "content")
    create_required = ("card_id", "content")


class AttachmentPatch(EntityPatch):
    card_id: Optional[str] = Field(default=None, alias="cardId", min_length=1)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = Field(default=None, pattern=ATTACHMENT_TYPE_PATTERN)

    non_nullable = ("card_id", "name", "url", "type")
    create_required = ("card_id", "name", "url", "type")


class BoardMergePatch(BoardFieldsPatch):
    """Merge-object patch: absent keys mean "leave unchanged"."""
    columns: Optional[List[ColumnPatch]] = None
    cards: Optional[List[CardPatch]] = None
    labels: Optional[List[LabelPatch]] = None
    comments: Optional[List[CommentPatch]] = None
    attachments: Optional[List[AttachmentPatch]] = None

    non_nullable = BoardFieldsPatch.non_nullable + ("columns", "cards", "labels", "comments", "attachments")

    def board_fields(self) -> Dict[str, Any]:
        return self.supplied_fields(exclude=("columns", "cards", "labels", "comments", "attachments"))


class PatchOperation(BaseModel):
    """One RFC-6902 style operation."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    op: Literal["add", "remove", "replace", "move", "copy", "test"]
    path: str
    value: Any = None
    from_: Optional[str] = Field(default=None, alias="from")


def format_location(loc: Tuple[Any, ...], prefix: str = "") -> str:
    """Render a pydantic error location as ``cards[2].priority``."""
    path = prefix
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path


def issues_from(exc: ValidationError, prefix: str = "") -> List[Dict[str, str]]:
    issues = []
    for error in exc.errors():
        # model-level validators report an empty location
        reason = error["msg"].removeprefix("Value error, ")
        issues.append({"path": format_location(tuple(error["loc"]), prefix), "reason": reason})
    return issues
