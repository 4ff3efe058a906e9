import time
from contextlib import contextmanager
from typing import Optional
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import Session
from settings import logger, settings
from .errors import EngineError, InternalEngineError, TransactionTimeoutError, WriteConflictError


# PostgreSQL serialization_failure / deadlock_detected
CONFLICT_SQLSTATES = {"40001", "40P01"}
# MySQL lock wait timeout / deadlock
CONFLICT_MYSQL_CODES = {1205, 1213}


def is_write_conflict(exc: BaseException) -> bool:
    """Whether a store error signals a concurrent-write conflict rather than a real failure."""
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, DBAPIError) or exc.orig is None:
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True
    if orig.args and isinstance(orig.args[0], int) and orig.args[0] in CONFLICT_MYSQL_CODES:
        return True
    if isinstance(exc, OperationalError) and "database is locked" in str(orig).lower():
        return True
    return False


def translate_store_error(
    exc: SQLAlchemyError,
    *,
    operation: str,
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
) -> EngineError:
    """Map a SQLAlchemy failure onto the engine taxonomy without leaking SQL."""
    if is_write_conflict(exc):
        return WriteConflictError(entity=entity, entity_id=entity_id)
    target = f" {entity} {entity_id}" if entity and entity_id else ""
    return InternalEngineError(f"{operation} failed on{target or ' store'}", entity=entity, entity_id=entity_id)


def _apply_statement_timeout(session: Session, timeout_seconds: float):
    if session.get_bind().dialect.name == "postgresql":
        session.exec(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))


@contextmanager
def atomic(session: Session, *, operation: str, timeout_seconds: Optional[float] = None):
    """Run the body as one transaction: commit on success, roll back on any failure.

    Every failure leaves as an ``EngineError``. A body that outlives
    ``timeout_seconds`` is rolled back even if all of its writes succeeded.
    """
    budget = timeout_seconds if timeout_seconds is not None else settings.transaction_timeout_seconds
    started = time.monotonic()
    try:
        _apply_statement_timeout(session, budget)
        yield
        session.flush()
        elapsed = time.monotonic() - started
        if elapsed > budget:
            raise TransactionTimeoutError(f"{operation} exceeded its {budget:.1f}s budget")
        session.commit()
    except EngineError as exc:
        session.rollback()
        logger.warning("Transaction rolled back", extra={
            "operation": operation,
            "category": exc.category,
            "reason": exc.message,
        })
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        translated = translate_store_error(exc, operation=operation)
        logger.error("Store error, transaction rolled back", extra={
            "operation": operation,
            "category": translated.category,
            "error": str(exc),
        })
        raise translated from exc
    except Exception as exc:
        session.rollback()
        logger.exception("Unexpected error, transaction rolled back", extra={"operation": operation})
        raise InternalEngineError(f"{operation} failed") from exc
