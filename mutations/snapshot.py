from dataclasses import dataclass, field
from typing import Dict, List, Set
from sqlmodel import Session, select
from models.boards import Board, BoardColumn, Label
from models.cards import Card, Comment, Attachment
from .errors import EntityNotFoundError


@dataclass
class BoardSnapshot:
    """Read-only view of a board used to resolve positional paths and create-vs-update."""
    board_id: str
    title: str
    theme: str
    is_public: bool
    column_ids: List[str] = field(default_factory=list)
    cards_by_column: Dict[str, List[str]] = field(default_factory=dict)
    label_ids: Set[str] = field(default_factory=set)
    comment_ids: Set[str] = field(default_factory=set)
    attachment_ids: Set[str] = field(default_factory=set)

    @property
    def card_ids(self) -> Set[str]:
        return {card_id for ids in self.cards_by_column.values() for card_id in ids}

    def known_ids(self, kind: str) -> Set[str]:
        if kind == "column":
            return set(self.column_ids)
        if kind == "card":
            return self.card_ids
        return getattr(self, f"{kind}_ids")


def read_board_snapshot(session: Session, board_id: str) -> BoardSnapshot:
    """Read the current board state: fields, ordered columns, ordered cards and child ids."""
    board = session.get(Board, board_id, populate_existing=True)
    if not board:
        raise EntityNotFoundError("Board", board_id)

    columns = session.exec(
        select(BoardColumn)
        .where(BoardColumn.board_id == board_id)
        .order_by(BoardColumn.order, BoardColumn.id)
    ).all()
    snapshot = BoardSnapshot(
        board_id=board.id,
        title=board.title,
        theme=board.theme.value if hasattr(board.theme, "value") else board.theme,
        is_public=board.is_public,
        column_ids=[column.id for column in columns],
        cards_by_column={column.id: [] for column in columns},
    )

    cards = session.exec(
        select(Card.id, Card.column_id)
        .where(Card.board_id == board_id)
        .order_by(Card.column_id, Card.order, Card.id)
    ).all()
    for card_id, column_id in cards:
        snapshot.cards_by_column.setdefault(column_id, []).append(card_id)

    snapshot.label_ids = set(session.exec(select(Label.id).where(Label.board_id == board_id)).all())
    snapshot.comment_ids = set(session.exec(
        select(Comment.id).join(Card, Card.id == Comment.card_id).where(Card.board_id == board_id)
    ).all())
    snapshot.attachment_ids = set(session.exec(
        select(Attachment.id).join(Card, Card.id == Attachment.card_id).where(Card.board_id == board_id)
    ).all())
    return snapshot
