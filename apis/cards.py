from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from database import get_session
from helpers.auth import get_actor_id
from models.cards import Card
from mutations.activity import list_card_activity
from mutations.engine import move_card
from mutations.errors import EntityNotFoundError
from .schemas.cards import ActivityListResponse, ActivityResponse, MoveCardRequest, MoveCardResponse

router = APIRouter(prefix="/cards", tags=["cards"])


@router.post("/{card_id}/move")
async def move_card_endpoint(
    card_id: str,
    move_data: MoveCardRequest,
    actor_id: str = Depends(get_actor_id),
    db_session: Session = Depends(get_session)
) -> MoveCardResponse:
    """Move a card to a column and position, retrying on concurrent moves."""
    result = await move_card(
        db_session,
        card_id,
        move_data.target_column_id,
        move_data.order,
        actor_id=actor_id,
    )
    return MoveCardResponse.model_validate(result)


@router.get("/{card_id}/activity")
async def get_card_activity(
    card_id: str,
    limit: int = Query(default=100, ge=1, le=500, description="Maximum number of records"),
    actor_id: str = Depends(get_actor_id),
    db_session: Session = Depends(get_session)
) -> ActivityListResponse:
    """List a card's activity, newest first."""
    if not db_session.get(Card, card_id):
        raise EntityNotFoundError("Card", card_id)

    activities = list_card_activity(db_session, card_id, limit=limit)
    return ActivityListResponse(activities=[ActivityResponse.model_validate(entry) for entry in activities])
