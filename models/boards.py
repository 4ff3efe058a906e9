from sqlmodel import SQLModel, Field, UniqueConstraint
from enum import Enum
from datetime import datetime
from .helper import id_generator, utcnow


class BoardTheme(str, Enum):
    """Display theme of a board."""
    LIGHT = "light"
    DARK = "dark"


class MembershipRole(str, Enum):
    """Role of a user on a board."""
    OWNER = "owner"
    MEMBER = "member"


class Board(SQLModel, table=True):
    """Kanban board holding ordered columns, labels and memberships."""
    id: str = Field(default_factory=id_generator('board', 10), primary_key=True)
    title: str = Field(index=True)
    theme: BoardTheme = Field(default=BoardTheme.DARK)
    is_public: bool = Field(default=False)
    owner_id: str = Field(foreign_key="user.id", index=True)
    # Bumped whenever the board's column sequence is renumbered.
    column_version: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Membership(SQLModel, table=True):
    """Links a User with a Board under a role; one row per (board, user)."""
    board_id: str = Field(foreign_key="board.id", primary_key=True)
    user_id: str = Field(foreign_key="user.id", primary_key=True)
    role: MembershipRole = Field(default=MembershipRole.MEMBER)


class BoardColumn(SQLModel, table=True):
    """Column of a board; ``order`` is dense and zero-based within the board."""
    __tablename__ = "board_column"

    id: str = Field(default_factory=id_generator('column', 10), primary_key=True)
    board_id: str = Field(foreign_key="board.id", index=True)
    title: str
    width: float = Field(default=272.0)
    order: int = Field(default=0, index=True)
    # Bumped whenever the column's card sequence is renumbered.
    version: int = Field(default=0)


class Label(SQLModel, table=True):
    """Colored tag defined once per board and attached to its cards."""
    __table_args__ = (UniqueConstraint("board_id", "name", name="uq_label_board_name"),)

    id: str = Field(default_factory=id_generator('label', 10), primary_key=True)
    board_id: str = Field(foreign_key="board.id", index=True)
    name: str
    color: str
