"""
Feature: Move a column
  As a board member
  I want to reorder the columns of a board
  So that the board reads in the order my team works

Scenario: Move the last column to the front
  Given columns To Do, Doing, Done
  When Done is moved to order 0
  Then the board reads Done, To Do, Doing with orders 0, 1, 2

Scenario: Move a column that does not exist
  Then the system returns a not-found error
"""

import pytest
from sqlmodel import create_engine, Session, SQLModel, select
from database import enable_sqlite_foreign_keys
from models.user import User
from models.boards import Board, BoardColumn
from mutations.engine import move_column
from mutations.errors import EntityNotFoundError


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
        BoardColumn(id="col_done", board_id="board_main", title="Done", order=2),
    ])
    session.commit()


def column_orders(session: Session):
    columns = session.exec(select(BoardColumn).order_by(BoardColumn.order)).all()
    return [(column.id, column.order) for column in columns]


async def no_sleep(seconds: float):
    pass


@pytest.mark.asyncio
async def test_move_last_column_to_front(session):
    # Given three columns
    seed_board(session)

    # When Done is moved to the front
    result = await move_column(session, "col_done", 0, sleep=no_sleep)

    # Then the board is renumbered around it
    assert result.order == 0
    assert result.previous_order == 2
    assert column_orders(session) == [("col_done", 0), ("col_todo", 1), ("col_doing", 2)]
    assert session.get(Board, "board_main").column_version == 1


@pytest.mark.asyncio
async def test_column_order_is_clamped(session):
    seed_board(session)

    result = await move_column(session, "col_todo", 50, sleep=no_sleep)

    assert result.order == 2
    assert column_orders(session) == [("col_doing", 0), ("col_done", 1), ("col_todo", 2)]


@pytest.mark.asyncio
async def test_move_unknown_column(session):
    seed_board(session)

    with pytest.raises(EntityNotFoundError) as exc_info:
        await move_column(session, "col_missing", 0, sleep=no_sleep)

    assert exc_info.value.entity == "Column"
    assert column_orders(session) == [("col_todo", 0), ("col_doing", 1), ("col_done", 2)]
