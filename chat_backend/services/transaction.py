"""Unit-of-work helpers.

Services own the commit: a block or function either commits as a whole or
is rolled back and the original exception propagates.

    with transaction():
        db.session.add(Provider(...))
"""

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Callable, TypeVar

from chat_backend import db

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _rollback(where: str, exc: BaseException) -> None:
    db.session.rollback()
    logger.error("Rolled back %s: %s", where, exc)


@contextmanager
def transaction():
    """Commit the enclosed block, or roll it back and re-raise."""
    try:
        yield
        db.session.commit()
    except Exception as exc:
        _rollback("transaction", exc)
        raise


def transactional(func: Callable[..., T]) -> Callable[..., T]:
    """Run `func` as one transaction, committing whatever it returns."""

    @wraps(func)
    def wrapper(*args, **kwargs) -> T:
        try:
            result = func(*args, **kwargs)
            db.session.commit()
        except Exception as exc:
            _rollback(func.__name__, exc)
            raise
        return result

    return wrapper


__all__ = ["transaction", "transactional"]
