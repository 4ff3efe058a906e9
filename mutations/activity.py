from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic_core import to_jsonable_python
from sqlmodel import Session, select
from models.activity import ActivityLog


class ActionType(str, Enum):
    """Action tags written to the activity log."""
    CREATE_CARD = "CREATE_CARD"
    UPDATE_CARD_TITLE = "UPDATE_CARD_TITLE"
    UPDATE_CARD_DESCRIPTION = "UPDATE_CARD_DESCRIPTION"
    UPDATE_CARD_PRIORITY = "UPDATE_CARD_PRIORITY"
    UPDATE_CARD_DUE_DATE = "UPDATE_CARD_DUE_DATE"
    UPDATE_CARD_WEIGHT = "UPDATE_CARD_WEIGHT"
    MOVE_CARD = "MOVE_CARD"
    DELETE_CARD = "DELETE_CARD"
    ADD_LABELS_TO_CARD = "ADD_LABELS_TO_CARD"
    REMOVE_LABELS_FROM_CARD = "REMOVE_LABELS_FROM_CARD"
    ADD_ASSIGNEES_TO_CARD = "ADD_ASSIGNEES_TO_CARD"
    REMOVE_ASSIGNEES_FROM_CARD = "REMOVE_ASSIGNEES_FROM_CARD"
    ADD_COMMENT = "ADD_COMMENT"
    UPDATE_COMMENT = "UPDATE_COMMENT"
    DELETE_COMMENT = "DELETE_COMMENT"
    ADD_ATTACHMENT = "ADD_ATTACHMENT"
    DELETE_ATTACHMENT = "DELETE_ATTACHMENT"


# card field -> action recorded when it changes
CARD_FIELD_ACTIONS = {
    "title": ActionType.UPDATE_CARD_TITLE,
    "description": ActionType.UPDATE_CARD_DESCRIPTION,
    "priority": ActionType.UPDATE_CARD_PRIORITY,
    "due_date": ActionType.UPDATE_CARD_DUE_DATE,
    "weight": ActionType.UPDATE_CARD_WEIGHT,
}


class ActivityRecorder:
    """Appends activity rows to the caller's open transaction.

    Rows are only visible once that transaction commits, so an aborted
    mutation never leaves an audit trail behind.
    """

    def __init__(self, session: Session, actor_id: Optional[str]):
        self.session = session
        self.actor_id = actor_id
        self.recorded: List[ActivityLog] = []

    def record(self, card_id: str, action: ActionType, details: Optional[Dict[str, Any]] = None) -> ActivityLog:
        entry = ActivityLog(
            card_id=card_id,
            user_id=self.actor_id,
            action_type=action.value,
            details=to_jsonable_python(details or {}),
        )
        self.session.add(entry)
        self.recorded.append(entry)
        return entry


def list_card_activity(session: Session, card_id: str, limit: int = 100) -> List[ActivityLog]:
    """Return a card's activity, newest first."""
    statement = (
        select(ActivityLog)
        .where(ActivityLog.card_id == card_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
    )
    return list(session.exec(statement).all())
