"""SQLAlchemy engine, session factory and the transaction helper.

Every money or status mutation in the engine runs inside ``atomic(db)``:
the block either commits as a whole or is rolled back as a whole.
"""

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from tradeleague.core.config import settings
from tradeleague.core.errors import PersistenceError


def build_engine(database_url: str):
    engine_kwargs: dict = {"echo": False}
    if database_url.startswith("sqlite"):
        # SQLite needs check_same_thread=False: the scheduler runs in a worker thread
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_size"] = 10
        engine_kwargs["max_overflow"] = 20
        engine_kwargs["pool_pre_ping"] = True
    return create_engine(database_url, **engine_kwargs)


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


@contextmanager
def atomic(db: Session):
    """Commit the enclosed work as one unit, or roll all of it back."""
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Database error: {exc}") from exc
    except BaseException:
        db.rollback()
        raise
