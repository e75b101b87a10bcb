"""FastAPI dependency yielding a database session per request."""

import logging
from collections.abc import Iterator

from sqlalchemy.orm import Session

from ebtracker.db.session import SessionLocal

logger = logging.getLogger(__name__)


def get_db_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    except Exception:
        logger.debug("Rolling back request session after error")
        session.rollback()
        raise
    finally:
        session.close()
