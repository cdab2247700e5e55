"""
unit_of_work.py — Explicit transaction boundary for multi-step mutations.

Mutating services receive a UnitOfWork instead of a bare session so that
atomicity is part of their signature:

    with uow.transaction():
        ...  # every statement here commits together or not at all

The block commits on normal exit and rolls back on any exception, then
re-raises. Nothing outside a transaction() block is ever committed by the
services; routes construct the UnitOfWork and never call commit themselves.

Read-only service functions keep taking a plain Session (uow.session).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class UnitOfWork:

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        try:
            yield self.session
            self.session.commit()
        except Exception:
            logger.debug("Rolling back transaction", exc_info=True)
            self.session.rollback()
            raise

    def __repr__(self) -> str:  # pragma: no cover
        return f"UnitOfWork(session={self.session!r})"
