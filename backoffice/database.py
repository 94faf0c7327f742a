import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from backoffice.config import settings
from backoffice.exceptions import InternalError, ValidationError

logger = logging.getLogger(__name__)

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """One unit of work: commit everything on success, roll back everything on failure.

    Persistence failures surface as InternalError; domain errors propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Transaction rolled back: %s", exc)
        raise InternalError("Database operation failed") from exc
    except Exception:
        db.rollback()
        raise


def reject_nulls(model, changes: dict) -> None:
    """Raise ValidationError when ``changes`` would write NULL into a NOT NULL column of ``model``."""
    columns = inspect(model).columns
    bad = sorted(
        field for field, value in changes.items()
        if value is None and field in columns and not columns[field].nullable
    )
    if bad:
        raise ValidationError(f"Field(s) cannot be null: {', '.join(bad)}")


def lock_for_update(query):
    """Row-level lock for read-then-write paths. SQLite ignores FOR UPDATE and serializes writers instead."""
    if query.session.get_bind().dialect.name == "sqlite":
        return query
    return query.with_for_update()


def init_db(bind=None):
    # Import all models so Base.metadata knows about them
    import backoffice.models.customer  # noqa: F401
    import backoffice.models.invoice  # noqa: F401
    import backoffice.models.product  # noqa: F401
    import backoffice.models.settings  # noqa: F401
    import backoffice.models.stock_movement  # noqa: F401
    import backoffice.models.user  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
