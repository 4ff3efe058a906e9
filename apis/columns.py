from fastapi import APIRouter, Depends
from sqlmodel import Session
from database import get_session
from helpers.auth import get_actor_id
from mutations.engine import move_column
from .schemas.boards import MoveColumnRequest, MoveColumnResponse

router = APIRouter(prefix="/columns", tags=["columns"])


@router.post("/{column_id}/move")
async def move_column_endpoint(
    column_id: str,
    move_data: MoveColumnRequest,
    actor_id: str = Depends(get_actor_id),
    db_session: Session = Depends(get_session)
) -> MoveColumnResponse:
    """Move a column to a new position within its board."""
    result = await move_column(db_session, column_id, move_data.order)
    return MoveColumnResponse.model_validate(result)
