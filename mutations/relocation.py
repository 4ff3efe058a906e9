"""
Relocation Protocol.

Moves one card to a column and position, renumbering the affected sibling
sequences so they stay dense. A move walks Received -> Validated -> Computing
-> Persisting -> Logged -> Done, and lands in Failed on any error.

Concurrent movers are detected with the per-column ``version`` counter: the
write phase bumps it with ``UPDATE ... WHERE version = <read version>`` and a
miss means someone else renumbered the column since we read it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from sqlalchemy.orm.attributes import flag_modified
from sqlmodel import Session, select
from settings import logger
from models.helper import utcnow
from models.boards import Board, BoardColumn
from models.cards import Card
from .activity import ActionType, ActivityRecorder
from .errors import EngineError, EntityNotFoundError, PatchValidationError
from .ordering import bump_version, reinsert
from .transaction import atomic


class RelocationState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    COMPUTING = "computing"
    PERSISTING = "persisting"
    LOGGED = "logged"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MoveCardRequest:
    card_id: str
    target_column_id: str
    target_order: int


@dataclass
class RelocationPlan:
    card_id: str
    card_title: str
    source_column_id: str
    source_column_title: str
    source_version: int
    target_column_id: str
    target_column_title: str
    target_version: int
    old_order: int
    new_order: int
    # final sibling sequences; source_sequence is empty for same-column moves
    target_sequence: List[str] = field(default_factory=list)
    source_sequence: List[str] = field(default_factory=list)

    @property
    def same_column(self) -> bool:
        return self.source_column_id == self.target_column_id


@dataclass
class RelocationResult:
    card_id: str
    column_id: str
    order: int
    previous_column_id: str
    previous_order: int
    activity_id: Optional[str] = None


def _validate_order(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise PatchValidationError.single(name, "must be an integer")
    if value < 0:
        raise PatchValidationError.single(name, "must be greater than or equal to 0")
    return value


class CardRelocation:
    """One card move, run as a single transaction."""

    def __init__(self, session: Session, request: MoveCardRequest, actor_id: Optional[str] = None,
                 *, timeout_seconds: Optional[float] = None):
        self.session = session
        self.request = request
        self.actor_id = actor_id
        self.timeout_seconds = timeout_seconds
        self.state = RelocationState.RECEIVED

    def _transition(self, state: RelocationState):
        logger.debug("Card relocation state change", extra={
            "card_id": self.request.card_id,
            "from_state": self.state.value,
            "to_state": state.value,
        })
        self.state = state

    def _sibling_ids(self, column_id: str) -> List[str]:
        return list(self.session.exec(
            select(Card.id).where(Card.column_id == column_id).order_by(Card.order, Card.id)
        ).all())

    def plan(self) -> RelocationPlan:
        """Validate the request and compute the final sibling sequences (reads only)."""
        request = self.request
        target_order = _validate_order(request.target_order, "order")

        card = self.session.get(Card, request.card_id)
        if not card:
            raise EntityNotFoundError("Card", request.card_id)
        target = self.session.get(BoardColumn, request.target_column_id)
        if not target:
            raise EntityNotFoundError("Column", request.target_column_id)
        if target.board_id != card.board_id:
            raise PatchValidationError.single("columnId", "target column belongs to another board")
        source = self.session.get(BoardColumn, card.column_id)
        self._transition(RelocationState.VALIDATED)

        self._transition(RelocationState.COMPUTING)
        plan = RelocationPlan(
            card_id=card.id,
            card_title=card.title,
            source_column_id=source.id,
            source_column_title=source.title,
            source_version=source.version,
            target_column_id=target.id,
            target_column_title=target.title,
            target_version=target.version,
            old_order=card.order,
            new_order=0,
        )
        if plan.same_column:
            plan.target_sequence = reinsert(self._sibling_ids(source.id), card.id, target_order)
        else:
            plan.source_sequence = [card_id for card_id in self._sibling_ids(source.id) if card_id != card.id]
            plan.target_sequence = reinsert(self._sibling_ids(target.id), card.id, target_order)
        plan.new_order = plan.target_sequence.index(card.id)
        return plan

    def persist(self, plan: RelocationPlan) -> RelocationResult:
        """Write the plan and its MOVE_CARD record; raises WriteConflictError if a sequence moved."""
        self._transition(RelocationState.PERSISTING)
        bump_version(self.session, BoardColumn, plan.source_column_id, plan.source_version)
        if not plan.same_column:
            bump_version(self.session, BoardColumn, plan.target_column_id, plan.target_version)

        touched = plan.target_sequence + plan.source_sequence
        cards = {
            card.id: card
            for card in self.session.exec(select(Card).where(Card.id.in_(touched))).all()
        }
        moved = cards[plan.card_id]
        moved.column_id = plan.target_column_id
        moved.updated_at = utcnow()
        for sequence in (plan.target_sequence, plan.source_sequence):
            for position, card_id in enumerate(sequence):
                cards[card_id].order = position
                # siblings whose position did not change are rewritten as well
                flag_modified(cards[card_id], "order")
        self.session.flush()

        entry = ActivityRecorder(self.session, self.actor_id).record(plan.card_id, ActionType.MOVE_CARD, {
            "cardTitle": plan.card_title,
            "oldColumnId": plan.source_column_id,
            "newColumnId": plan.target_column_id,
            "oldColumnTitle": plan.source_column_title,
            "newColumnTitle": plan.target_column_title,
            "oldOrder": plan.old_order,
            "newOrder": plan.new_order,
        })
        self._transition(RelocationState.LOGGED)

        return RelocationResult(
            card_id=plan.card_id,
            column_id=plan.target_column_id,
            order=plan.new_order,
            previous_column_id=plan.source_column_id,
            previous_order=plan.old_order,
            activity_id=entry.id,
        )

    def run(self) -> RelocationResult:
        try:
            with atomic(self.session, operation="move_card", timeout_seconds=self.timeout_seconds):
                result = self.persist(self.plan())
        except EngineError:
            self._transition(RelocationState.FAILED)
            raise
        self._transition(RelocationState.DONE)
        logger.info("Card moved", extra={
            "card_id": result.card_id,
            "from_column": result.previous_column_id,
            "to_column": result.column_id,
            "order": result.order,
        })
        return result


@dataclass
class MoveColumnRequest:
    column_id: str
    target_order: int


@dataclass
class ColumnMoveResult:
    column_id: str
    board_id: str
    order: int
    previous_order: int


class ColumnRelocation:
    """Moves a column within its board, guarded by ``Board.column_version``."""

    def __init__(self, session: Session, request: MoveColumnRequest, *, timeout_seconds: Optional[float] = None):
        self.session = session
        self.request = request
        self.timeout_seconds = timeout_seconds

    def run(self) -> ColumnMoveResult:
        with atomic(self.session, operation="move_column", timeout_seconds=self.timeout_seconds):
            target_order = _validate_order(self.request.target_order, "order")
            column = self.session.get(BoardColumn, self.request.column_id)
            if not column:
                raise EntityNotFoundError("Column", self.request.column_id)
            board = self.session.get(Board, column.board_id)
            read_version = board.column_version

            ids = list(self.session.exec(
                select(BoardColumn.id)
                .where(BoardColumn.board_id == board.id)
                .order_by(BoardColumn.order, BoardColumn.id)
            ).all())
            sequence = reinsert(ids, column.id, target_order)
            previous_order = column.order

            bump_version(self.session, Board, board.id, read_version, version_column="column_version")
            columns = {
                row.id: row
                for row in self.session.exec(select(BoardColumn).where(BoardColumn.board_id == board.id)).all()
            }
            for position, column_id in enumerate(sequence):
                if columns[column_id].order != position:
                    columns[column_id].order = position
            board.updated_at = utcnow()
            result = ColumnMoveResult(
                column_id=column.id,
                board_id=board.id,
                order=sequence.index(column.id),
                previous_order=previous_order,
            )

        logger.info("Column moved", extra={
            "column_id": result.column_id,
            "board_id": result.board_id,
            "order": result.order,
        })
        return result
