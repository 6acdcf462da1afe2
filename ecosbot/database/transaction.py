"""
Transaction helpers

Repository methods commit on their own. When several rows must be written
atomically (a patient turn, an evaluation with its report) wrap the writes in
``transaction``:

    with transaction(db, "save patient turn"):
        db.add(question)
        db.add(answer)
"""
import logging
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@contextmanager
def transaction(db: Session, description: str = "transaction") -> Iterator[Session]:
    """Commit on success, roll back and re-raise on any error."""
    try:
        yield db
        db.commit()
        logger.debug(f"Committed: {description}")
    except Exception as e:
        db.rollback()
        logger.error(f"Rolled back '{description}': {e}", exc_info=True)
        raise


def transactional(description: str) -> Callable:
    """
    Decorator for repository methods whose first argument after ``self`` owns
    a ``db`` attribute (the repository itself).
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            with transaction(self.db, description):
                return func(self, *args, **kwargs)

        return wrapper

    return decorator
