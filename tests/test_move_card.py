"""
Feature: Move a card
  As a board member
  I want to drag a card to a column and position
  So that every column keeps a gap-free 0..n-1 ordering

Scenario: Move down within the same column
  Given cards A, B, C in one column
  When A is moved to order 2
  Then the column reads B, C, A with orders 0, 1, 2

Scenario: Move to another column
  Given a source column A, B, C and a target column X
  When A is moved to the target at order 0
  Then the source reads B, C and the target reads A, X

Scenario: Requested order past the end
  When a card is moved to an order larger than the target column allows
  Then the card lands at the last slot

Scenario: Concurrent mover changed the column
  Given a move plan computed from the column as it was read
  When another writer renumbers the column before the plan is written
  Then the write is refused as a conflict

Scenario: Every sibling is rewritten
  When a card moves to another column
  Then every card of both columns is written with its final order
"""

import pytest
from sqlalchemy import event, update
from sqlmodel import create_engine, Session, SQLModel, select
from database import enable_sqlite_foreign_keys
from models.user import User
from models.boards import Board, BoardColumn
from models.cards import Card
from models.activity import ActivityLog
from mutations.engine import move_card
from mutations.errors import EntityNotFoundError, PatchValidationError, WriteConflictError
from mutations.relocation import CardRelocation, MoveCardRequest, RelocationState


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


def seed_board(session: Session):
    session.add(User(id="user_owner", username="owner"))
    session.commit()
    session.add(Board(id="board_main", title="Roadmap", owner_id="user_owner"))
    session.commit()
    session.add_all([
        BoardColumn(id="col_todo", board_id="board_main", title="To Do", order=0),
        BoardColumn(id="col_doing", board_id="board_main", title="Doing", order=1),
        BoardColumn(id="col_empty", board_id="board_main", title="Later", order=2),
    ])
    session.commit()
    session.add_all([
        Card(id="card_a", board_id="board_main", column_id="col_todo", title="A", order=0),
        Card(id="card_b", board_id="board_main", column_id="col_todo", title="B", order=1),
        Card(id="card_c", board_id="board_main", column_id="col_todo", title="C", order=2),
        Card(id="card_x", board_id="board_main", column_id="col_doing", title="X", order=0),
    ])
    session.commit()


def card_orders(session: Session, column_id: str):
    cards = session.exec(select(Card).where(Card.column_id == column_id).order_by(Card.order)).all()
    return [(card.id, card.order) for card in cards]


async def no_sleep(seconds: float):
    pass


@pytest.mark.asyncio
async def test_move_within_same_column(session):
    # Given cards A, B, C
    seed_board(session)

    # When A is moved to order 2
    result = await move_card(session, "card_a", "col_todo", 2, actor_id="user_owner", sleep=no_sleep)

    # Then the column reads B, C, A
    assert result.order == 2
    assert card_orders(session, "col_todo") == [("card_b", 0), ("card_c", 1), ("card_a", 2)]


@pytest.mark.asyncio
async def test_move_up_within_same_column(session):
    seed_board(session)

    await move_card(session, "card_c", "col_todo", 0, sleep=no_sleep)

    assert card_orders(session, "col_todo") == [("card_c", 0), ("card_a", 1), ("card_b", 2)]


@pytest.mark.asyncio
async def test_same_column_order_is_clamped(session):
    seed_board(session)

    result = await move_card(session, "card_a", "col_todo", 10, sleep=no_sleep)

    assert result.order == 2
    assert card_orders(session, "col_todo") == [("card_b", 0), ("card_c", 1), ("card_a", 2)]


@pytest.mark.asyncio
async def test_move_to_another_column(session):
    # Given a source column A, B, C and a target column X
    seed_board(session)

    # When A is moved to the top of the target
    result = await move_card(session, "card_a", "col_doing", 0, actor_id="user_owner", sleep=no_sleep)

    # Then both columns are dense
    assert result.column_id == "col_doing"
    assert result.previous_column_id == "col_todo"
    assert card_orders(session, "col_todo") == [("card_b", 0), ("card_c", 1)]
    assert card_orders(session, "col_doing") == [("card_a", 0), ("card_x", 1)]
    assert session.get(Card, "card_a").column_id == "col_doing"


@pytest.mark.asyncio
async def test_cross_column_order_is_clamped(session):
    seed_board(session)

    result = await move_card(session, "card_b", "col_doing", 99, sleep=no_sleep)

    assert result.order == 1
    assert card_orders(session, "col_doing") == [("card_x", 0), ("card_b", 1)]
    assert card_orders(session, "col_todo") == [("card_a", 0), ("card_c", 1)]


@pytest.mark.asyncio
async def test_move_into_empty_column(session):
    seed_board(session)

    await move_card(session, "card_x", "col_empty", 3, sleep=no_sleep)

    assert card_orders(session, "col_empty") == [("card_x", 0)]
    assert card_orders(session, "col_doing") == []


@pytest.mark.asyncio
async def test_move_writes_one_activity_record(session):
    seed_board(session)

    result = await move_card(session, "card_a", "col_doing", 1, actor_id="user_owner", sleep=no_sleep)

    records = session.exec(select(ActivityLog).where(ActivityLog.card_id == "card_a")).all()
    assert len(records) == 1
    record = records[0]
    assert record.id == result.activity_id
    assert record.action_type == "MOVE_CARD"
    assert record.user_id == "user_owner"
    assert record.details == {
        "cardTitle": "A",
        "oldColumnId": "col_todo",
        "newColumnId": "col_doing",
        "oldColumnTitle": "To Do",
        "newColumnTitle": "Doing",
        "oldOrder": 0,
        "newOrder": 1,
    }


@pytest.mark.asyncio
async def test_move_bumps_column_versions(session):
    seed_board(session)

    await move_card(session, "card_a", "col_doing", 0, sleep=no_sleep)

    assert session.get(BoardColumn, "col_todo").version == 1
    assert session.get(BoardColumn, "col_doing").version == 1
    assert session.get(BoardColumn, "col_empty").version == 0


@pytest.mark.asyncio
async def test_move_unknown_card(session):
    seed_board(session)

    with pytest.raises(EntityNotFoundError) as exc_info:
        await move_card(session, "card_missing", "col_todo", 0, sleep=no_sleep)

    assert exc_info.value.entity == "Card"


@pytest.mark.asyncio
async def test_move_to_unknown_column(session):
    seed_board(session)

    with pytest.raises(EntityNotFoundError) as exc_info:
        await move_card(session, "card_a", "col_missing", 0, sleep=no_sleep)

    # Then nothing moved and nothing was recorded
    assert exc_info.value.entity == "Column"
    assert card_orders(session, "col_todo") == [("card_a", 0), ("card_b", 1), ("card_c", 2)]
    assert session.exec(select(ActivityLog)).all() == []


@pytest.mark.asyncio
async def test_negative_order_is_rejected(session):
    seed_board(session)

    with pytest.raises(PatchValidationError):
        await move_card(session, "card_a", "col_todo", -1, sleep=no_sleep)


@pytest.mark.asyncio
async def test_move_to_column_of_another_board(session):
    seed_board(session)
    session.add(Board(id="board_other", title="Other", owner_id="user_owner"))
    session.commit()
    session.add(BoardColumn(id="col_other", board_id="board_other", title="Inbox", order=0))
    session.commit()

    with pytest.raises(PatchValidationError):
        await move_card(session, "card_a", "col_other", 0, sleep=no_sleep)

    assert session.get(Card, "card_a").column_id == "col_todo"


def test_relocation_walks_through_states(session):
    seed_board(session)
    relocation = CardRelocation(session, MoveCardRequest("card_a", "col_doing", 0))

    assert relocation.state == RelocationState.RECEIVED
    relocation.run()

    assert relocation.state == RelocationState.DONE


def test_failed_relocation_ends_in_failed_state(session):
    seed_board(session)
    relocation = CardRelocation(session, MoveCardRequest("card_missing", "col_doing", 0))

    with pytest.raises(EntityNotFoundError):
        relocation.run()

    assert relocation.state == RelocationState.FAILED


def test_concurrent_renumbering_is_a_conflict(session):
    # Given a plan computed from the column as it was read
    seed_board(session)
    relocation = CardRelocation(session, MoveCardRequest("card_a", "col_todo", 2))
    plan = relocation.plan()

    # When another writer renumbers the column first
    session.exec(
        update(BoardColumn)
        .where(BoardColumn.id == "col_todo")
        .values(version=BoardColumn.version + 1)
    )

    # Then writing the stale plan is refused
    with pytest.raises(WriteConflictError):
        relocation.persist(plan)
    session.rollback()


@pytest.mark.asyncio
async def test_move_rewrites_every_card_of_both_columns(session):
    seed_board(session)
    written = []

    def collect(mapper, connection, target):
        written.append((target.id, target.column_id, target.order))

    event.listen(Card, "after_update", collect)
    try:
        await move_card(session, "card_a", "col_doing", 0, sleep=no_sleep)
    finally:
        event.remove(Card, "after_update", collect)

    assert sorted(written) == [
        ("card_a", "col_doing", 0),
        ("card_b", "col_todo", 0),
        ("card_c", "col_todo", 1),
        ("card_x", "col_doing", 1),
    ]


@pytest.mark.asyncio
async def test_same_column_move_rewrites_unmoved_siblings(session):
    seed_board(session)
    written = []

    def collect(mapper, connection, target):
        written.append(target.id)

    event.listen(Card, "after_update", collect)
    try:
        # card_c already sits at order 2 and stays there
        await move_card(session, "card_a", "col_todo", 1, sleep=no_sleep)
    finally:
        event.remove(Card, "after_update", collect)

    assert sorted(written) == ["card_a", "card_b", "card_c"]
    assert card_orders(session, "col_todo") == [("card_b", 0), ("card_a", 1), ("card_c", 2)]
