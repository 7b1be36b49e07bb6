"""
Database session management
"""
import logging
from typing import Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from flowforge.core.config import settings
from flowforge.db.base import Base
from flowforge.exceptions import StorageConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that mean "someone else got there first / the lock timed out".
# Everything else, business errors included, is not retried.
TRANSIENT_ERRORS = (StaleDataError, OperationalError)

# Unique-index races (two activations of sibling BOMs) are safe to re-run:
# the retry re-reads under lock and resolves the race.
UNIQUE_RACE_ERRORS = TRANSIENT_ERRORS + (IntegrityError,)


def build_engine(url: str, echo: bool = False):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(
        url,
        echo=echo,
        connect_args=connect_args,
        pool_pre_ping=True,  # Verify connections before using
    )


engine = build_engine(settings.database_url, echo=settings.DB_ECHO)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/stock")
        def list_stock(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create all tables that do not exist yet."""
    import flowforge.models  # noqa: F401 - registers every model on Base.metadata

    Base.metadata.create_all(bind=bind or engine)


def run_in_transaction(
    db: Session,
    work: Callable[[], T],
    *,
    attempts: Optional[int] = None,
    retry_on: Tuple[Type[Exception], ...] = TRANSIENT_ERRORS,
) -> T:
    """
    Run ``work`` as one unit of work: commit if it returns, roll back if it raises.

    Optimistic-version conflicts and lock timeouts are retried up to
    ``attempts`` times (each retry re-runs ``work`` from scratch against fresh
    rows). When they keep happening a StorageConflictError is raised.
    Business errors propagate on the first occurrence.
    """
    attempts = attempts or settings.DB_TRANSACTION_RETRIES

    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except retry_on as exc:
            db.rollback()
            logger.warning(
                "Transient storage conflict, retrying unit of work",
                extra={"attempt": attempt, "max_attempts": attempts, "error": type(exc).__name__},
            )
        except Exception:
            db.rollback()
            raise

    raise StorageConflictError(attempts)
