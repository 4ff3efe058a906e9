from sqlmodel import SQLModel, Field
from enum import Enum
from typing import Optional
from datetime import datetime
from .helper import id_generator, utcnow


class CardPriority(str, Enum):
    """Priority of a card."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Card(SQLModel, table=True):
    """Work item inside a column; ``order`` is dense and zero-based within the column."""
    id: str = Field(default_factory=id_generator('card', 10), primary_key=True)
    board_id: str = Field(foreign_key="board.id", index=True)
    column_id: str = Field(foreign_key="board_column.id", index=True)
    title: str
    description: str = Field(default="")
    priority: CardPriority = Field(default=CardPriority.MEDIUM)
    weight: Optional[int] = Field(default=None)
    due_date: Optional[datetime] = Field(default=None)
    order: int = Field(default=0, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CardLabel(SQLModel, table=True):
    """Links a Label with a Card."""
    card_id: str = Field(foreign_key="card.id", primary_key=True)
    label_id: str = Field(foreign_key="label.id", primary_key=True)


class CardAssignee(SQLModel, table=True):
    """Links a User assigned to a Card."""
    card_id: str = Field(foreign_key="card.id", primary_key=True)
    user_id: str = Field(foreign_key="user.id", primary_key=True)


class Comment(SQLModel, table=True):
    """Comment written on a card."""
    id: str = Field(default_factory=id_generator('comment', 10), primary_key=True)
    card_id: str = Field(foreign_key="card.id", index=True)
    author_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    content: str
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class Attachment(SQLModel, table=True):
    """Link or uploaded file attached to a card."""
    id: str = Field(default_factory=id_generator('attachment', 10), primary_key=True)
    card_id: str = Field(foreign_key="card.id", index=True)
    name: str
    url: str
    type: str = Field(default="link")
    created_at: datetime = Field(default_factory=utcnow)
