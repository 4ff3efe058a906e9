from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from models.boards import BoardTheme, MembershipRole
from models.cards import CardPriority


class CardResponse(BaseModel):
    """Schema for a card inside a board response."""
    id: str = Field(..., description="Card ID")
    column_id: str = Field(..., description="Column holding the card")
    title: str = Field(..., description="Card title")
    description: str = Field(..., description="Card description")
    priority: CardPriority = Field(..., description="low, medium or high")
    weight: Optional[int] = Field(None, description="Estimation weight")
    due_date: Optional[datetime] = Field(None, description="Due date")
    order: int = Field(..., description="Zero-based position within the column")
    labels: List[str] = Field(default_factory=list, description="Label IDs")
    assignees: List[str] = Field(default_factory=list, description="Assigned user IDs")
    updated_at: datetime = Field(..., description="Last modification timestamp")

    model_config = {"from_attributes": True}


class ColumnResponse(BaseModel):
    """Schema for a column with its ordered cards."""
    id: str = Field(..., description="Column ID")
    title: str = Field(..., description="Column title")
    width: float = Field(..., description="Display width")
    order: int = Field(..., description="Zero-based position within the board")
    cards: List[CardResponse] = Field(default_factory=list, description="Cards in order")

    model_config = {"from_attributes": True}


class LabelResponse(BaseModel):
    id: str = Field(..., description="Label ID")
    name: str = Field(..., description="Label name, unique per board")
    color: str = Field(..., description="#RRGGBB color")

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    user_id: str = Field(..., description="User ID")
    role: MembershipRole = Field(..., description="owner or member")

    model_config = {"from_attributes": True}


class BoardDetailResponse(BaseModel):
    """Schema for the nested board read."""
    id: str = Field(..., description="Board ID")
    title: str = Field(..., description="Board title")
    theme: BoardTheme = Field(..., description="light or dark")
    is_public: bool = Field(..., description="Whether the board is publicly visible")
    owner_id: str = Field(..., description="Owner user ID")
    columns: List[ColumnResponse] = Field(default_factory=list, description="Columns in order")
    labels: List[LabelResponse] = Field(default_factory=list, description="Board labels")
    members: List[MemberResponse] = Field(default_factory=list, description="Board members")
    updated_at: datetime = Field(..., description="Last modification timestamp")


class CreateBoardRequest(BaseModel):
    """Schema for creating a board; the caller becomes its owner."""
    title: str = Field(..., min_length=1, description="Board title")
    theme: Optional[BoardTheme] = Field(None, description="light or dark, dark when omitted")
    is_public: bool = Field(False, alias="isPublic", description="Whether the board is publicly visible")

    model_config = {"populate_by_name": True}


class BoardSummaryResponse(BaseModel):
    """Schema for one entry of the board list."""
    id: str = Field(..., description="Board ID")
    title: str = Field(..., description="Board title")
    theme: BoardTheme = Field(..., description="light or dark")
    is_public: bool = Field(..., description="Whether the board is publicly visible")
    owner_id: str = Field(..., description="Owner user ID")
    updated_at: datetime = Field(..., description="Last modification timestamp")

    model_config = {"from_attributes": True}


class PatchResultResponse(BaseModel):
    """IDs touched by a patch, grouped by entity type."""
    board_updated: bool = Field(..., description="Whether top-level board fields changed")
    created: Dict[str, List[str]] = Field(default_factory=dict)
    updated: Dict[str, List[str]] = Field(default_factory=dict)
    deleted: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class PatchBoardResponse(BaseModel):
    """Schema for the PATCH response: the result plus the board as it now stands."""
    result: PatchResultResponse
    board: BoardDetailResponse


class MoveColumnRequest(BaseModel):
    """Schema for moving a column within its board."""
    order: int = Field(..., description="Requested zero-based position")


class MoveColumnResponse(BaseModel):
    column_id: str = Field(..., description="Column ID")
    board_id: str = Field(..., description="Board ID")
    order: int = Field(..., description="Final position")
    previous_order: int = Field(..., description="Position before the move")

    model_config = {"from_attributes": True}
