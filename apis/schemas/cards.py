from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime


class MoveCardRequest(BaseModel):
    """Schema for moving a card to a column and position."""
    target_column_id: str = Field(..., alias="targetColumnId", min_length=1, description="Destination column ID")
    order: int = Field(..., description="Requested zero-based position in the destination column")

    model_config = {"populate_by_name": True}


class MoveCardResponse(BaseModel):
    """Schema for a completed card move."""
    card_id: str = Field(..., description="Card ID")
    column_id: str = Field(..., description="Column now holding the card")
    order: int = Field(..., description="Final position, after clamping")
    previous_column_id: str = Field(..., description="Column before the move")
    previous_order: int = Field(..., description="Position before the move")
    activity_id: Optional[str] = Field(None, description="ID of the MOVE_CARD activity record")

    model_config = {"from_attributes": True}


class ActivityResponse(BaseModel):
    """Schema for one activity record."""
    id: str = Field(..., description="Activity ID")
    card_id: str = Field(..., description="Card the action applied to")
    user_id: Optional[str] = Field(None, description="Acting user")
    action_type: str = Field(..., description="Action tag such as MOVE_CARD")
    details: Dict[str, Any] = Field(default_factory=dict, description="Action specific payload")
    created_at: datetime = Field(..., description="When the action happened")

    model_config = {"from_attributes": True}


class ActivityListResponse(BaseModel):
    activities: List[ActivityResponse]
