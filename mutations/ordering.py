"""
Dense ordering helpers.

Sibling ``order`` values (cards in a column, columns in a board) always form
``0..n-1``. These helpers compute and audit such sequences.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set
from sqlalchemy import update
from sqlmodel import Session, select
from models.boards import Board, BoardColumn
from models.cards import Card
from .errors import WriteConflictError


def reinsert(ids: Sequence[str], item_id: str, position: int) -> List[str]:
    """Move ``item_id`` to ``position`` in ``ids``, clamping the position to the valid range."""
    sequence = [existing for existing in ids if existing != item_id]
    position = max(0, min(position, len(sequence)))
    sequence.insert(position, item_id)
    return sequence


def resequence(rows: Iterable, explicit_ids: Set[str] = frozenset(),
               previous_positions: Optional[Dict[str, int]] = None) -> List:
    """Rewrite ``row.order`` on every row so the sequence becomes ``0..n-1``.

    Rows sort by their current order; on ties, rows whose order was set
    explicitly come first, then rows keep their previous relative position.
    """
    previous_positions = previous_positions or {}
    unknown = len(previous_positions)
    ranked = sorted(rows, key=lambda row: (
        row.order,
        row.id not in explicit_ids,
        previous_positions.get(row.id, unknown),
        row.id,
    ))
    for position, row in enumerate(ranked):
        if row.order != position:
            row.order = position
    return ranked


def bump_version(session: Session, model, row_id: str, read_version: int, version_column: str = "version"):
    """Increment a sequence version only if it still equals ``read_version``.

    Raises WriteConflictError when another transaction renumbered the sequence
    since it was read.
    """
    column = getattr(model, version_column)
    statement = (
        update(model)
        .where(model.id == row_id, column == read_version)
        .values({version_column: column + 1})
    )
    outcome = session.exec(statement)
    if outcome.rowcount == 0:
        raise WriteConflictError(entity=model.__name__, entity_id=row_id)


def is_contiguous(orders: Iterable[int]) -> bool:
    values = sorted(orders)
    return values == list(range(len(values)))


@dataclass
class OrderViolation:
    scope: str          # "column" (cards in a column) or "board" (columns in a board)
    scope_id: str
    orders: List[int]


def find_order_violations(session: Session) -> List[OrderViolation]:
    """Scan every board and column for gaps or duplicates in sibling order."""
    violations: List[OrderViolation] = []
    for board_id in session.exec(select(Board.id)).all():
        orders = session.exec(select(BoardColumn.order).where(BoardColumn.board_id == board_id)).all()
        if not is_contiguous(orders):
            violations.append(OrderViolation("board", board_id, sorted(orders)))
    for column_id in session.exec(select(BoardColumn.id)).all():
        orders = session.exec(select(Card.order).where(Card.column_id == column_id)).all()
        if not is_contiguous(orders):
            violations.append(OrderViolation("column", column_id, sorted(orders)))
    return violations


def repair_violation(session: Session, violation: OrderViolation):
    """Re-densify one violating sequence in place (caller commits)."""
    if violation.scope == "board":
        board = session.get(Board, violation.scope_id)
        bump_version(session, Board, board.id, board.column_version, version_column="column_version")
        rows = session.exec(select(BoardColumn).where(BoardColumn.board_id == violation.scope_id)).all()
    else:
        column = session.get(BoardColumn, violation.scope_id)
        bump_version(session, BoardColumn, column.id, column.version)
        rows = session.exec(select(Card).where(Card.column_id == violation.scope_id)).all()
    resequence(rows)
