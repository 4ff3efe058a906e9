#!/usr/bin/env python3
"""
Management commands for the Kanban board service.

Usage:
    python manage.py init_db
    python manage.py check_db
    python manage.py reset_db
    python manage.py create_user <username> [email]
    python manage.py check_order
    python manage.py repair_order
"""

import sys
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session
from database import engine, init_db as create_tables
from settings import logger
from models.user import User
# Import all models to ensure tables are registered
from models import boards, cards, activity  # noqa: F401
from mutations.errors import EngineError
from mutations.ordering import find_order_violations, repair_violation
from mutations.transaction import atomic


def init_db():
    """Initialize database tables."""
    logger.info("Creating database tables...")
    create_tables()
    logger.info("Database tables created successfully")


def check_db():
    """Check database connection and tables."""
    try:
        tables = inspect(engine).get_table_names()
        logger.info("Database connected", extra={"table_count": len(tables), "tables": tables})
    except SQLAlchemyError as e:
        logger.error("Database connection failed", extra={"error": str(e)})
        sys.exit(1)


def reset_db():
    """Drop and recreate all database tables."""
    logger.warning("Dropping all database tables...")
    SQLModel.metadata.drop_all(engine)
    logger.info("Creating database tables...")
    create_tables()
    logger.info("Database reset successfully")


def create_user(username: str, email: str = None):
    """Create a user that can act on boards."""
    with Session(engine) as session:
        try:
            with atomic(session, operation="create_user"):
                user = User(username=username, email=email)
                session.add(user)
        except EngineError as e:
            logger.error("Failed to create user", extra={"username": username, "error": e.message})
            sys.exit(1)
        logger.info("User created", extra={"username": username, "user_id": user.id})


def check_order() -> int:
    """Report every board or column whose sibling order is not 0..n-1."""
    with Session(engine) as session:
        violations = find_order_violations(session)
    for violation in violations:
        logger.warning("Order violation", extra={
            "scope": violation.scope,
            "scope_id": violation.scope_id,
            "orders": violation.orders,
        })
    logger.info("Order check finished", extra={"violations": len(violations)})
    return len(violations)


def repair_order():
    """Re-densify every violating sequence in one transaction."""
    with Session(engine) as session:
        try:
            with atomic(session, operation="repair_order"):
                violations = find_order_violations(session)
                for violation in violations:
                    repair_violation(session, violation)
        except EngineError as e:
            logger.error("Order repair failed", extra={"error": e.message, "category": e.category})
            sys.exit(1)
    logger.info("Order repair finished", extra={"repaired": len(violations)})


def main():
    if len(sys.argv) < 2:
        print("Usage: python manage.py <command> [args]")
        print("Commands:")
        print("  init_db                        - Initialize database tables")
        print("  check_db                       - Check database connection")
        print("  reset_db                       - Drop and recreate all tables")
        print("  create_user <username> [email] - Create a user")
        print("  check_order                    - Report columns/boards with gaps or duplicates in order")
        print("  repair_order                   - Re-densify every violating order sequence")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init_db":
        init_db()
    elif command == "check_db":
        check_db()
    elif command == "reset_db":
        reset_db()
    elif command == "create_user":
        if len(sys.argv) not in (3, 4):
            print("Usage: python manage.py create_user <username> [email]")
            sys.exit(1)
        create_user(sys.argv[2], sys.argv[3] if len(sys.argv) == 4 else None)
    elif command == "check_order":
        sys.exit(1 if check_order() else 0)
    elif command == "repair_order":
        repair_order()
    else:
        print(f"Unknown command: {command}")
        print("Run 'python manage.py' to see available commands")
        sys.exit(1)


if __name__ == "__main__":
    main()
