"""
Feature: Card activity feed
  As a board member
  I want to read what happened to a card
  So that I can follow its history

Scenario: List activity newest first
  Given a card with several activity records
  When they request GET /cards/{card_id}/activity
  Then the records are returned newest first

Scenario: Activity records cannot be rewritten
  Given an activity record exists
  When code tries to modify or delete it
  Then the change is refused
"""

import pytest
from datetime import datetime, timedelta, timezone
from sqlmodel import create_engine, Session, SQLModel
from database import enable_sqlite_foreign_keys
from models.user import User
from models.boards import Board, BoardColumn
from models.cards import Card
from models.activity import ActivityLog, ImmutableRecordError
from apis.cards import get_card_activity
from mutations.activity import ActionType, ActivityRecorder, list_card_activity
from mutations.errors import EntityNotFoundError


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


def seed_card_with_history(session: Session):
    session.add(User(id="user_owner", username="owner"))
    session.commit()
    session.add(Board(id="board_main", title="Roadmap", owner_id="user_owner"))
    session.commit()
    session.add(BoardColumn(id="col_todo", board_id="board_main", title="To Do", order=0))
    session.commit()
    session.add(Card(id="card_1", board_id="board_main", column_id="col_todo", title="Write docs", order=0))
    session.commit()

    start = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    session.add_all([
        ActivityLog(id="activity_1", card_id="card_1", user_id="user_owner",
                    action_type="CREATE_CARD", details={"title": "Write docs"}, created_at=start),
        ActivityLog(id="activity_2", card_id="card_1", user_id="user_owner",
                    action_type="UPDATE_CARD_TITLE", details={"old": "Docs", "new": "Write docs"},
                    created_at=start + timedelta(minutes=5)),
        ActivityLog(id="activity_3", card_id="card_1", user_id="user_owner",
                    action_type="MOVE_CARD", details={"oldOrder": 0, "newOrder": 0},
                    created_at=start + timedelta(minutes=10)),
    ])
    session.commit()


def test_list_newest_first(session):
    seed_card_with_history(session)

    records = list_card_activity(session, "card_1")

    assert [record.id for record in records] == ["activity_3", "activity_2", "activity_1"]


def test_list_respects_limit(session):
    seed_card_with_history(session)

    records = list_card_activity(session, "card_1", limit=1)

    assert [record.id for record in records] == ["activity_3"]


@pytest.mark.asyncio
async def test_get_card_activity_endpoint(session):
    # Given a card with history
    seed_card_with_history(session)

    # When they request its activity
    result = await get_card_activity(card_id="card_1", limit=100, actor_id="user_owner", db_session=session)

    # Then the records come back newest first with their details
    assert [entry.action_type for entry in result.activities] == ["MOVE_CARD", "UPDATE_CARD_TITLE", "CREATE_CARD"]
    assert result.activities[1].details == {"old": "Docs", "new": "Write docs"}


@pytest.mark.asyncio
async def test_get_activity_of_unknown_card(session):
    with pytest.raises(EntityNotFoundError):
        await get_card_activity(card_id="card_missing", limit=100, actor_id="user_owner", db_session=session)


def test_recorder_converts_enums_and_dates(session):
    seed_card_with_history(session)
    recorder = ActivityRecorder(session, "user_owner")

    entry = recorder.record("card_1", ActionType.UPDATE_CARD_DUE_DATE, {
        "old": None,
        "new": datetime(2024, 6, 1, tzinfo=timezone.utc),
    })
    session.commit()

    assert recorder.recorded == [entry]
    assert session.get(ActivityLog, entry.id).details == {"old": None, "new": "2024-06-01T00:00:00Z"}


def test_activity_cannot_be_modified(session):
    seed_card_with_history(session)
    record = session.get(ActivityLog, "activity_1")

    record.action_type = "DELETE_CARD"
    with pytest.raises(ImmutableRecordError):
        session.commit()


def test_activity_cannot_be_deleted(session):
    seed_card_with_history(session)
    record = session.get(ActivityLog, "activity_2")

    session.delete(record)
    with pytest.raises(ImmutableRecordError):
        session.commit()
