from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON, event
from typing import Optional, Dict, Any
from datetime import datetime
from .helper import id_generator, utcnow


class ActivityLog(SQLModel, table=True):
    """Append-only audit record of a mutation that touched a card.

    ``card_id`` carries no foreign key so records outlive the card they describe.
    """
    __tablename__ = "activity_log"

    id: str = Field(default_factory=id_generator('activity', 10), primary_key=True)
    card_id: str = Field(index=True)
    user_id: Optional[str] = Field(default=None, index=True)
    action_type: str = Field(index=True)
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, index=True)


class ImmutableRecordError(Exception):
    """Raised when code tries to change or remove an ActivityLog row."""


@event.listens_for(ActivityLog, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableRecordError(f"ActivityLog {target.id} is immutable")


@event.listens_for(ActivityLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(f"ActivityLog {target.id} cannot be deleted")
