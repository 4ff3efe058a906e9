from sqlalchemy import event
from sqlmodel import SQLModel, Session, create_engine
from settings import settings


def _sqlite_connect_args(url: str) -> dict:
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


def enable_sqlite_foreign_keys(target_engine):
    """Turn on FK enforcement for every new SQLite connection of ``target_engine``."""
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_engine(
    settings.database_url,
    connect_args=_sqlite_connect_args(settings.database_url),
)
enable_sqlite_foreign_keys(engine)


def get_session():
    """Yield a database session scoped to one request."""
    with Session(engine) as session:
        yield session


def init_db():
    """Create all tables known to the SQLModel metadata."""
    # Import all models so their tables are registered
    from models import user, boards, cards, activity  # noqa: F401
    SQLModel.metadata.create_all(engine)
