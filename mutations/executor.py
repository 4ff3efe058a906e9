"""
Mutation Executor.

Applies a ``ChangeSet`` to one board inside exactly one transaction, entity
kind by entity kind: board fields, columns, cards, labels, comments,
attachments. Any failing op aborts the whole transaction.
"""

from typing import Any, Callable, Dict, List, Optional, Set
from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select
from settings import logger
from models.helper import utcnow
from models.boards import Board, BoardColumn, Label
from models.cards import Card, CardLabel, CardAssignee, Comment, Attachment
from models.user import User
from .activity import ActionType, ActivityRecorder, CARD_FIELD_ACTIONS
from .changeset import ChangeSet, ChangeSetResult, Create, EntityOp, Update
from .errors import EngineError, EntityNotFoundError, PatchValidationError
from .ordering import bump_version, resequence
from .transaction import atomic, translate_store_error


ENTITY_MODELS = {
    "column": BoardColumn,
    "card": Card,
    "label": Label,
    "comment": Comment,
    "attachment": Attachment,
}

ENTITY_NAMES = {
    "column": "Column",
    "card": "Card",
    "label": "Label",
    "comment": "Comment",
    "attachment": "Attachment",
}


class MutationExecutor:
    """Applies a ChangeSet to a single board atomically."""

    def __init__(self, session: Session, board_id: str, actor_id: Optional[str] = None,
                 *, timeout_seconds: Optional[float] = None):
        self.session = session
        self.board_id = board_id
        self.actor_id = actor_id
        self.timeout_seconds = timeout_seconds
        self.activity = ActivityRecorder(session, actor_id)
        self.result = ChangeSetResult()

        self._column_positions: Dict[str, int] = {}
        self._card_positions: Dict[str, int] = {}
        # sequence versions as read at the start of the transaction
        self._column_versions: Dict[str, int] = {}
        self._board_column_version = 0
        self._explicit_column_orders: Set[str] = set()
        self._explicit_card_orders: Set[str] = set()
        self._columns_reordered = False
        self._touched_columns: Set[str] = set()
        self._deleted_columns: Set[str] = set()
        self._pending_label_sets: Dict[str, List[str]] = {}

    def apply(self, changeset: ChangeSet) -> ChangeSetResult:
        if changeset.is_empty():
            logger.debug("Empty change set, nothing to apply", extra={"board_id": self.board_id})
            return self.result

        with atomic(self.session, operation="patch_board", timeout_seconds=self.timeout_seconds):
            board = self.session.get(Board, self.board_id)
            if not board:
                raise EntityNotFoundError("Board", self.board_id)
            self._board_column_version = board.column_version
            self._capture_positions()

            # 1. Board fields
            if changeset.board_field_updates:
                for name, value in changeset.board_field_updates.items():
                    setattr(board, name, value)
                self.result.board_updated = True

            # 2. Columns, then re-densify the board's column sequence
            for op in changeset.column_ops:
                self._run("column", op, self._apply_column_op)
            if self._columns_reordered:
                self._resequence_columns(board)

            # 3. Cards, then re-densify every column they touched
            for op in changeset.card_ops:
                self._run("card", op, self._apply_card_op)
            self._resequence_cards()

            # 4. Labels, then card label sets that may reference them
            for op in changeset.label_ops:
                self._run("label", op, self._apply_label_op)
            self._apply_pending_label_sets()

            # 5. Comments
            for op in changeset.comment_ops:
                self._run("comment", op, self._apply_comment_op)

            # 6. Attachments
            for op in changeset.attachment_ops:
                self._run("attachment", op, self._apply_attachment_op)

            board.updated_at = utcnow()

        logger.info("Change set applied", extra={
            "board_id": self.board_id,
            "actor_id": self.actor_id,
            "created_ids": self.result.created,
            "updated_ids": self.result.updated,
            "deleted_ids": self.result.deleted,
            "activity_records": len(self.activity.recorded),
        })
        return self.result

    # --- shared plumbing ---

    def _run(self, kind: str, op: EntityOp, handler: Callable[[EntityOp], None]):
        """Apply one op and flush it so a store failure is attributed to this op."""
        try:
            if isinstance(op, Create):
                self._ensure_new(kind, op.id)
            handler(op)
            self.session.flush()
        except EngineError:
            raise
        except SQLAlchemyError as exc:
            raise translate_store_error(
                exc,
                operation=f"{type(op).__name__.lower()} {kind}",
                entity=ENTITY_NAMES[kind],
                entity_id=op.id,
            ) from exc
        self.result.track(kind, op)

    def _capture_positions(self):
        columns = self.session.exec(
            select(BoardColumn.id, BoardColumn.order, BoardColumn.version).where(BoardColumn.board_id == self.board_id)
        ).all()
        self._column_positions = {column_id: order for column_id, order, _ in columns}
        self._column_versions = {column_id: version for column_id, _, version in columns}
        cards = self.session.exec(
            select(Card.id, Card.order).where(Card.board_id == self.board_id)
        ).all()
        self._card_positions = {card_id: order for card_id, order in cards}

    def _ensure_new(self, kind: str, entity_id: str):
        if self.session.get(ENTITY_MODELS[kind], entity_id) is not None:
            raise PatchValidationError.single(f"{kind}s.{entity_id}.id", "id is already in use")

    def _board_of(self, kind: str, row: Any) -> Optional[str]:
        if kind in ("comment", "attachment"):
            card = self.session.get(Card, row.card_id)
            return card.board_id if card else None
        return row.board_id

    def _get_scoped(self, kind: str, entity_id: str):
        """Load an entity of this board, or fail with not-found."""
        row = self.session.get(ENTITY_MODELS[kind], entity_id)
        if row is None or self._board_of(kind, row) != self.board_id:
            raise EntityNotFoundError(ENTITY_NAMES[kind], entity_id)
        return row

    def _count(self, statement) -> int:
        return self.session.exec(statement).one()

    # --- columns ---

    def _apply_column_op(self, op: EntityOp):
        if isinstance(op, Create):
            fields = dict(op.fields)
            if "order" in fields:
                self._explicit_column_orders.add(op.id)
            else:
                fields["order"] = self._count(
                    select(func.count()).select_from(BoardColumn).where(BoardColumn.board_id == self.board_id)
                )
            self.session.add(BoardColumn(id=op.id, board_id=self.board_id, **fields))
            self._columns_reordered = True

        elif isinstance(op, Update):
            column = self._get_scoped("column", op.id)
            for name, value in op.fields.items():
                setattr(column, name, value)
            if "order" in op.fields:
                self._explicit_column_orders.add(op.id)
                self._columns_reordered = True

        else:
            column = self._get_scoped("column", op.id)
            cards = self.session.exec(select(Card).where(Card.column_id == column.id)).all()
            for card in cards:
                self._delete_card(card)
            # cards must be gone before the column row
            self.session.flush()
            self.session.delete(column)
            self._deleted_columns.add(column.id)
            self._touched_columns.discard(column.id)
            self._columns_reordered = True

    def _resequence_columns(self, board: Board):
        columns = self.session.exec(
            select(BoardColumn).where(BoardColumn.board_id == self.board_id)
        ).all()
        resequence(columns, self._explicit_column_orders, self._column_positions)
        bump_version(self.session, Board, board.id, self._board_column_version, version_column="column_version")

    # --- cards ---

    def _column_of_board(self, column_id: str) -> BoardColumn:
        if column_id in self._deleted_columns:
            raise EntityNotFoundError("Column", column_id)
        return self._get_scoped("column", column_id)

    def _apply_card_op(self, op: EntityOp):
        if isinstance(op, Create):
            self._create_card(op)
        elif isinstance(op, Update):
            self._update_card(op)
        else:
            self._delete_card(self._get_scoped("card", op.id))

    def _create_card(self, op: Create):
        fields = dict(op.fields)
        labels = fields.pop("labels", None)
        assignees = fields.pop("assignees", None)
        column = self._column_of_board(fields["column_id"])

        if "order" in fields:
            self._explicit_card_orders.add(op.id)
        else:
            fields["order"] = self._count(
                select(func.count()).select_from(Card).where(Card.column_id == column.id)
            )
        card = Card(id=op.id, board_id=self.board_id, **fields)
        self.session.add(card)
        self._touched_columns.add(column.id)

        self.activity.record(card.id, ActionType.CREATE_CARD, {
            "title": card.title,
            "columnId": column.id,
            "columnTitle": column.title,
        })
        if assignees:
            self.session.flush()
            self._set_assignees(card, assignees)
        if labels:
            self._pending_label_sets[card.id] = labels

    def _update_card(self, op: Update):
        card = self._get_scoped("card", op.id)
        fields = dict(op.fields)
        labels = fields.pop("labels", None)
        assignees = fields.pop("assignees", None)

        old_column_id = card.column_id
        old_order = card.order
        new_column_id = fields.pop("column_id", old_column_id)
        if new_column_id != old_column_id:
            target = self._column_of_board(new_column_id)
            card.column_id = target.id
            self._touched_columns.update({old_column_id, target.id})
        if "order" in fields:
            card.order = fields.pop("order")
            self._explicit_card_orders.add(card.id)
            self._touched_columns.add(card.column_id)
        if new_column_id != old_column_id:
            source = self.session.get(BoardColumn, old_column_id)
            self.activity.record(card.id, ActionType.MOVE_CARD, {
                "cardTitle": card.title,
                "oldColumnId": old_column_id,
                "newColumnId": card.column_id,
                "oldColumnTitle": source.title if source else None,
                "newColumnTitle": self.session.get(BoardColumn, card.column_id).title,
                "oldOrder": old_order,
                "newOrder": card.order,
            })

        for name, value in fields.items():
            previous = getattr(card, name)
            setattr(card, name, value)
            action = CARD_FIELD_ACTIONS.get(name)
            if action and previous != value:
                self.activity.record(card.id, action, {"old": previous, "new": value})
        card.updated_at = utcnow()

        if assignees is not None:
            self._set_assignees(card, assignees)
        if labels is not None:
            self._pending_label_sets[card.id] = labels

    def _delete_card(self, card: Card):
        self.session.exec(delete(CardLabel).where(CardLabel.card_id == card.id))
        self.session.exec(delete(CardAssignee).where(CardAssignee.card_id == card.id))
        self.session.exec(delete(Comment).where(Comment.card_id == card.id))
        self.session.exec(delete(Attachment).where(Attachment.card_id == card.id))
        self.activity.record(card.id, ActionType.DELETE_CARD, {
            "title": card.title,
            "columnId": card.column_id,
        })
        self._pending_label_sets.pop(card.id, None)
        if card.column_id not in self._deleted_columns:
            self._touched_columns.add(card.column_id)
        self.session.delete(card)

    def _set_assignees(self, card: Card, user_ids: List[str]):
        wanted = list(dict.fromkeys(user_ids))
        for user_id in wanted:
            if self.session.get(User, user_id) is None:
                raise EntityNotFoundError("User", user_id)
        current = set(self.session.exec(
            select(CardAssignee.user_id).where(CardAssignee.card_id == card.id)
        ).all())
        added = [user_id for user_id in wanted if user_id not in current]
        removed = sorted(current - set(wanted))

        if removed:
            self.session.exec(delete(CardAssignee).where(
                CardAssignee.card_id == card.id, CardAssignee.user_id.in_(removed)
            ))
            self.activity.record(card.id, ActionType.REMOVE_ASSIGNEES_FROM_CARD, {"assigneeIds": removed})
        for user_id in added:
            self.session.add(CardAssignee(card_id=card.id, user_id=user_id))
        if added:
            self.activity.record(card.id, ActionType.ADD_ASSIGNEES_TO_CARD, {"assigneeIds": added})

    def _resequence_cards(self):
        for column_id in sorted(self._touched_columns - self._deleted_columns):
            column = self.session.get(BoardColumn, column_id)
            if column is None:
                continue
            cards = self.session.exec(select(Card).where(Card.column_id == column_id)).all()
            resequence(cards, self._explicit_card_orders, self._card_positions)
            # columns created by this change set were not read before
            bump_version(self.session, BoardColumn, column_id, self._column_versions.get(column_id, column.version))

    # --- labels ---

    def _ensure_unique_label_name(self, name: str, label_id: str):
        clash = self.session.exec(
            select(Label.id).where(Label.board_id == self.board_id, Label.name == name, Label.id != label_id)
        ).first()
        if clash:
            raise PatchValidationError.single(f"labels.{label_id}.name", f"name '{name}' is already used on this board")

    def _apply_label_op(self, op: EntityOp):
        if isinstance(op, Create):
            self._ensure_unique_label_name(op.fields["name"], op.id)
            self.session.add(Label(id=op.id, board_id=self.board_id, **op.fields))

        elif isinstance(op, Update):
            label = self._get_scoped("label", op.id)
            if "name" in op.fields:
                self._ensure_unique_label_name(op.fields["name"], op.id)
            for name, value in op.fields.items():
                setattr(label, name, value)

        else:
            label = self._get_scoped("label", op.id)
            # detach from every card before the row goes away
            self.session.exec(delete(CardLabel).where(CardLabel.label_id == label.id))
            self.session.delete(label)

    def _apply_pending_label_sets(self):
        for card_id, label_ids in self._pending_label_sets.items():
            try:
                self._set_labels(card_id, label_ids)
                self.session.flush()
            except EngineError:
                raise
            except SQLAlchemyError as exc:
                raise translate_store_error(exc, operation="set card labels", entity="Card", entity_id=card_id) from exc

    def _set_labels(self, card_id: str, label_ids: List[str]):
        wanted = list(dict.fromkeys(label_ids))
        for label_id in wanted:
            label = self.session.get(Label, label_id)
            if label is None:
                raise EntityNotFoundError("Label", label_id)
            if label.board_id != self.board_id:
                raise PatchValidationError.single(
                    f"cards.{card_id}.labels", f"label {label_id} belongs to another board"
                )
        current = set(self.session.exec(
            select(CardLabel.label_id).where(CardLabel.card_id == card_id)
        ).all())
        added = [label_id for label_id in wanted if label_id not in current]
        removed = sorted(current - set(wanted))

        if removed:
            self.session.exec(delete(CardLabel).where(
                CardLabel.card_id == card_id, CardLabel.label_id.in_(removed)
            ))
            self.activity.record(card_id, ActionType.REMOVE_LABELS_FROM_CARD, {"labelIds": removed})
        for label_id in added:
            self.session.add(CardLabel(card_id=card_id, label_id=label_id))
        if added:
            self.activity.record(card_id, ActionType.ADD_LABELS_TO_CARD, {"labelIds": added})

    # --- comments and attachments ---

    def _reject_card_change(self, kind: str, row: Any, fields: Dict[str, Any]):
        if "card_id" in fields and fields["card_id"] != row.card_id:
            raise PatchValidationError.single(f"{kind}s.{row.id}.cardId", "cannot move to another card")

    def _apply_comment_op(self, op: EntityOp):
        if isinstance(op, Create):
            card = self._get_scoped("card", op.fields["card_id"])
            comment = Comment(id=op.id, card_id=card.id, author_id=self.actor_id, content=op.fields["content"])
            self.session.add(comment)
            self.activity.record(card.id, ActionType.ADD_COMMENT, {"commentId": comment.id})

        elif isinstance(op, Update):
            comment = self._get_scoped("comment", op.id)
            self._reject_card_change("comment", comment, op.fields)
            if "content" in op.fields:
                comment.content = op.fields["content"]
                comment.updated_at = utcnow()
                self.activity.record(comment.card_id, ActionType.UPDATE_COMMENT, {"commentId": comment.id})

        else:
            comment = self._get_scoped("comment", op.id)
            self.activity.record(comment.card_id, ActionType.DELETE_COMMENT, {"commentId": comment.id})
            self.session.delete(comment)

    def _apply_attachment_op(self, op: EntityOp):
        if isinstance(op, Create):
            fields = dict(op.fields)
            card = self._get_scoped("card", fields.pop("card_id"))
            attachment = Attachment(id=op.id, card_id=card.id, **fields)
            self.session.add(attachment)
            self.activity.record(card.id, ActionType.ADD_ATTACHMENT, {
                "attachmentId": attachment.id,
                "name": attachment.name,
                "type": attachment.type,
            })

        elif isinstance(op, Update):
            attachment = self._get_scoped("attachment", op.id)
            fields = dict(op.fields)
            self._reject_card_change("attachment", attachment, fields)
            fields.pop("card_id", None)
            for name, value in fields.items():
                setattr(attachment, name, value)

        else:
            attachment = self._get_scoped("attachment", op.id)
            self.activity.record(attachment.card_id, ActionType.DELETE_ATTACHMENT, {
                "attachmentId": attachment.id,
                "name": attachment.name,
            })
            self.session.delete(attachment)


def apply_changeset(session: Session, board_id: str, changeset: ChangeSet,
                    actor_id: Optional[str] = None, *, timeout_seconds: Optional[float] = None) -> ChangeSetResult:
    """Apply ``changeset`` to ``board_id`` atomically and return the touched ids."""
    executor = MutationExecutor(session, board_id, actor_id, timeout_seconds=timeout_seconds)
    return executor.apply(changeset)
