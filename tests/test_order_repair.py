"""
Feature: Audit and repair sibling ordering
  As an operator
  I want to find and fix columns whose card order has gaps or duplicates
  So that data written before the ordering rules can be brought back in line

Scenario: Detect and repair a column with gaps
  Given a column whose cards have orders 0, 2, 5
  When the order check runs
  Then the column is reported
  And repairing renumbers the cards to 0, 1, 2 keeping their relative order
"""

import pytest
from sqlmodel import create_engine, Session, SQLModel, select
from database import enable_sqlite_foreign_keys
from models.user import User
from models.boards import Board, BoardColumn
from models.cards import Card
from mutations.ordering import find_order_violations, is_contiguous, reinsert, repair_violation, resequence


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


def seed_broken_board(session: Session):
    session.add(User(id="user_owner", username="owner"))
    session.commit()
    session.add(Board(id="board_main", title="Roadmap", owner_id="user_owner"))
    session.commit()
    session.add_all([
        BoardColumn(id="col_todo", board_id="board_main", title="To Do", order=0),
        BoardColumn(id="col_done", board_id="board_main", title="Done", order=3),
    ])
    session.commit()
    session.add_all([
        Card(id="card_a", board_id="board_main", column_id="col_todo", title="A", order=0),
        Card(id="card_b", board_id="board_main", column_id="col_todo", title="B", order=2),
        Card(id="card_c", board_id="board_main", column_id="col_todo", title="C", order=5),
        Card(id="card_d", board_id="board_main", column_id="col_done", title="D", order=0),
    ])
    session.commit()


def test_reinsert_clamps_position():
    assert reinsert(["a", "b", "c"], "a", 1) == ["b", "a", "c"]
    assert reinsert(["a", "b", "c"], "a", 99) == ["b", "c", "a"]
    assert reinsert(["a", "b"], "z", 0) == ["z", "a", "b"]


def test_is_contiguous():
    assert is_contiguous([2, 0, 1])
    assert is_contiguous([])
    assert not is_contiguous([0, 2])
    assert not is_contiguous([0, 0, 1])


def test_find_violations(session):
    seed_broken_board(session)

    violations = find_order_violations(session)

    scopes = {(violation.scope, violation.scope_id): violation.orders for violation in violations}
    assert scopes == {("board", "board_main"): [0, 3], ("column", "col_todo"): [0, 2, 5]}


def test_repair_violations(session):
    # Given a board with gaps
    seed_broken_board(session)

    # When every violation is repaired
    for violation in find_order_violations(session):
        repair_violation(session, violation)
    session.commit()

    # Then the sequences are dense and keep their relative order
    cards = session.exec(select(Card).where(Card.column_id == "col_todo").order_by(Card.order)).all()
    assert [(card.id, card.order) for card in cards] == [("card_a", 0), ("card_b", 1), ("card_c", 2)]
    assert session.get(BoardColumn, "col_done").order == 1
    assert session.get(BoardColumn, "col_todo").version == 1
    assert session.get(Board, "board_main").column_version == 1
    assert find_order_violations(session) == []


class Row:
    def __init__(self, id, order):
        self.id = id
        self.order = order


def test_resequence_prefers_explicit_then_previous_position():
    rows = [Row("a", 0), Row("b", 1), Row("c", 1), Row("d", 1)]

    ranked = resequence(rows, explicit_ids={"d"}, previous_positions={"a": 0, "b": 2, "c": 1})

    assert [(row.id, row.order) for row in ranked] == [("a", 0), ("d", 1), ("c", 2), ("b", 3)]
