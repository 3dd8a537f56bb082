# SPDX-License-Identifier: AGPL-3.0-or-later
"""Transaction boundary for structural writes."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from bottleops.errors import ConcurrentModification

logger = logging.getLogger(__name__)


def transactional(func: Callable):
    """Run ``func(session, ...)`` as one unit: commit on success, roll back on any error."""

    @wraps(func)
    def wrapper(session: Session, *args, **kwargs):
        try:
            result = func(session, *args, **kwargs)
            session.flush()
            session.commit()
            return result
        except StaleDataError as exc:
            session.rollback()
            logger.warning("%s: stale write detected, rolled back", func.__name__)
            raise ConcurrentModification(
                "record changed by another request; retry the operation", operation=func.__name__
            ) from exc
        except IntegrityError as exc:
            session.rollback()
            logger.warning("%s: integrity conflict, rolled back: %s", func.__name__, exc.orig)
            raise ConcurrentModification(
                "conflicting write; retry the operation",
                operation=func.__name__,
                detail=str(exc.orig),
            ) from exc
        except Exception:
            session.rollback()
            raise

    return wrapper


__all__ = ["transactional"]
