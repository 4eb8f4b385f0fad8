# Overview: Transaction scope and row locking shared by every mutating service operation.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the write lock taken by
    the first UPDATE serializes writers instead.
    """
    return query.with_for_update()


@contextmanager
def transaction_scope():
    """
    Single begin/commit/rollback exit path for a service operation.

    Yields the session. Commits when the block finishes; any exception rolls
    back everything done inside the block and propagates. Store constraint
    violations and optimistic-lock conflicts surface as ConflictError. No retries.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("Operation conflicts with existing data") from exc
    except StaleDataError as exc:
        session.rollback()
        raise ConflictError("Record was modified concurrently; reload and retry") from exc
    except BaseException:
        session.rollback()
        raise
