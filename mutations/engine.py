"""
Entry points of the board mutation engine used by the HTTP layer and manage.py.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from sqlmodel import Session, select
from settings import logger, settings
from models.boards import Board, BoardColumn, BoardTheme, Label, Membership, MembershipRole
from models.cards import Card, CardAssignee, CardLabel
from models.user import User
from .changeset import ChangeSetResult
from .errors import EntityNotFoundError, PatchValidationError
from .executor import apply_changeset
from .normalizer import normalize_patch
from .relocation import (
    CardRelocation, ColumnMoveResult, ColumnRelocation, MoveCardRequest, MoveColumnRequest, RelocationResult
)
from .retry import RetryPolicy, run_with_conflict_retry
from .snapshot import read_board_snapshot
from .transaction import atomic


def create_board(session: Session, title: str, owner_id: str, theme: Optional[BoardTheme] = None,
                 is_public: bool = False) -> Board:
    """Create an empty board and make ``owner_id`` its owner member."""
    title = (title or "").strip()
    if not title:
        raise PatchValidationError.single("title", "must not be empty")

    with atomic(session, operation="create_board", timeout_seconds=settings.transaction_timeout_seconds):
        if not session.get(User, owner_id):
            raise EntityNotFoundError("User", owner_id)
        board = Board(title=title, owner_id=owner_id, theme=theme or BoardTheme.DARK, is_public=is_public)
        session.add(board)
        # the membership row references the board
        session.flush()
        session.add(Membership(board_id=board.id, user_id=owner_id, role=MembershipRole.OWNER))

    session.refresh(board)
    logger.info("Board created", extra={"board_id": board.id, "owner_id": owner_id})
    return board


def list_boards(session: Session, user_id: str) -> List[Board]:
    """Boards that are public or that ``user_id`` owns or belongs to, most recently updated first."""
    member_of = select(Membership.board_id).where(Membership.user_id == user_id)
    statement = (
        select(Board)
        .where(or_(Board.is_public == True, Board.owner_id == user_id, Board.id.in_(member_of)))
        .order_by(Board.updated_at.desc(), Board.id)
    )
    return list(session.exec(statement).all())


def patch_board(session: Session, board_id: str, payload: Any, actor_id: Optional[str] = None) -> ChangeSetResult:
    """Normalize a patch of either grammar and apply it atomically.

    Bulk patches are not retried on conflict; the caller gets the conflict error.
    """
    snapshot = read_board_snapshot(session, board_id)
    # release the snapshot read before the write transaction begins
    session.rollback()
    changeset = normalize_patch(payload, snapshot)
    result = apply_changeset(
        session, board_id, changeset, actor_id,
        timeout_seconds=settings.transaction_timeout_seconds,
    )
    logger.info("Board patched", extra={"board_id": board_id, "noop": result.is_noop})
    return result


async def move_card(session: Session, card_id: str, target_column_id: str, target_order: int,
                    actor_id: Optional[str] = None, *, policy: Optional[RetryPolicy] = None,
                    sleep=None) -> RelocationResult:
    """Move a card, retrying the whole transaction on write conflicts."""
    request = MoveCardRequest(card_id=card_id, target_column_id=target_column_id, target_order=target_order)

    def attempt() -> RelocationResult:
        relocation = CardRelocation(
            session, request, actor_id, timeout_seconds=settings.transaction_timeout_seconds
        )
        return relocation.run()

    kwargs = {"sleep": sleep} if sleep is not None else {}
    return await run_with_conflict_retry(attempt, policy, name="move_card", **kwargs)


async def move_column(session: Session, column_id: str, target_order: int,
                      *, policy: Optional[RetryPolicy] = None, sleep=None) -> ColumnMoveResult:
    """Move a column within its board, retrying on write conflicts."""
    request = MoveColumnRequest(column_id=column_id, target_order=target_order)

    def attempt() -> ColumnMoveResult:
        return ColumnRelocation(session, request, timeout_seconds=settings.transaction_timeout_seconds).run()

    kwargs = {"sleep": sleep} if sleep is not None else {}
    return await run_with_conflict_retry(attempt, policy, name="move_column", **kwargs)


@dataclass
class BoardDetail:
    """Nested board view: columns in order, each with its cards in order."""
    board: Board
    columns: List[BoardColumn] = field(default_factory=list)
    cards_by_column: Dict[str, List[Card]] = field(default_factory=dict)
    labels: List[Label] = field(default_factory=list)
    memberships: List[Membership] = field(default_factory=list)
    card_labels: Dict[str, List[str]] = field(default_factory=dict)
    card_assignees: Dict[str, List[str]] = field(default_factory=dict)


def read_board(session: Session, board_id: str) -> BoardDetail:
    board = session.get(Board, board_id)
    if not board:
        raise EntityNotFoundError("Board", board_id)

    detail = BoardDetail(board=board)
    detail.columns = list(session.exec(
        select(BoardColumn).where(BoardColumn.board_id == board_id).order_by(BoardColumn.order, BoardColumn.id)
    ).all())
    detail.cards_by_column = {column.id: [] for column in detail.columns}
    cards = session.exec(
        select(Card).where(Card.board_id == board_id).order_by(Card.column_id, Card.order, Card.id)
    ).all()
    for card in cards:
        detail.cards_by_column.setdefault(card.column_id, []).append(card)

    card_ids = [card.id for card in cards]
    if card_ids:
        for card_id, label_id in session.exec(
            select(CardLabel.card_id, CardLabel.label_id).where(CardLabel.card_id.in_(card_ids))
        ).all():
            detail.card_labels.setdefault(card_id, []).append(label_id)
        for card_id, user_id in session.exec(
            select(CardAssignee.card_id, CardAssignee.user_id).where(CardAssignee.card_id.in_(card_ids))
        ).all():
            detail.card_assignees.setdefault(card_id, []).append(user_id)

    detail.labels = list(session.exec(
        select(Label).where(Label.board_id == board_id).order_by(Label.name)
    ).all())
    detail.memberships = list(session.exec(
        select(Membership).where(Membership.board_id == board_id)
    ).all())
    return detail
