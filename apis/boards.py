from fastapi import APIRouter, Body, Depends, status
from sqlmodel import Session
from typing import Any, Dict, List, Union
from database import get_session
from helpers.auth import get_actor_id
from mutations.engine import BoardDetail, create_board, list_boards, patch_board, read_board
from .schemas.boards import (
    BoardDetailResponse, BoardSummaryResponse, CardResponse, ColumnResponse, CreateBoardRequest,
    LabelResponse, MemberResponse, PatchBoardResponse, PatchResultResponse
)

router = APIRouter(prefix="/boards", tags=["boards"])


def build_board_response(detail: BoardDetail) -> BoardDetailResponse:
    board = detail.board
    columns = []
    for column in detail.columns:
        cards = [
            CardResponse.model_validate(card).model_copy(update={
                "labels": detail.card_labels.get(card.id, []),
                "assignees": detail.card_assignees.get(card.id, []),
            })
            for card in detail.cards_by_column.get(column.id, [])
        ]
        columns.append(ColumnResponse(
            id=column.id, title=column.title, width=column.width, order=column.order, cards=cards
        ))

    return BoardDetailResponse(
        id=board.id,
        title=board.title,
        theme=board.theme,
        is_public=board.is_public,
        owner_id=board.owner_id,
        columns=columns,
        labels=[LabelResponse.model_validate(label) for label in detail.labels],
        members=[MemberResponse.model_validate(member) for member in detail.memberships],
        updated_at=board.updated_at,
    )


@router.get("")
async def get_boards(
    actor_id: str = Depends(get_actor_id),
    db_session: Session = Depends(get_session)
) -> List[BoardSummaryResponse]:
    """List boards the actor can see, most recently updated first."""
    return [BoardSummaryResponse.model_validate(board) for board in list_boards(db_session, actor_id)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def post_board(
    board_data: CreateBoardRequest,
    actor_id: str = Depends(get_actor_id),
    db_session: Session = Depends(get_session)
) -> BoardDetailResponse:
    """Create a board owned by the actor."""
    board = create_board(
        db_session, board_data.title, actor_id, theme=board_data.theme, is_public=board_data.is_public
    )
    return build_board_response(read_board(db_session, board.id))


@router.get("/{board_id}")
async def get_board(
    board_id: str,
    actor_id: str = Depends(get_actor_id),
    db_session: Session = Depends(get_session)
) -> BoardDetailResponse:
    """Get board with its ordered columns, cards, labels and members."""
    return build_board_response(read_board(db_session, board_id))


@router.patch("/{board_id}")
async def update_board(
    board_id: str,
    payload: Union[List[Any], Dict[str, Any]] = Body(...),
    actor_id: str = Depends(get_actor_id),
    db_session: Session = Depends(get_session)
) -> PatchBoardResponse:
    """Apply an operation-list or merge-object patch atomically."""

    # Normalize and apply in one transaction; engine errors map to HTTP in main.py
    result = patch_board(db_session, board_id, payload, actor_id=actor_id)

    # Return the board as it now stands
    return PatchBoardResponse(
        result=PatchResultResponse.model_validate(result),
        board=build_board_response(read_board(db_session, board_id)),
    )
