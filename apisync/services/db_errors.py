"""
Translation of SQLAlchemy failures into application exceptions.

Services wrap their database work in `database_errors(...)` and flush inside
the block, so storage problems surface here rather than at commit time:

    with database_errors("Could not update the endpoint.", endpoint_id=str(id)):
        ...
        await db.flush()

- StaleDataError (the version compare-and-swap matched no row) → StaleWriteError
- any other SQLAlchemyError → DatabaseError with a generic message
- ApiSyncError subclasses pass through untouched
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from apisync.exceptions import DatabaseError, StaleWriteError

logger = logging.getLogger(__name__)


@contextmanager
def database_errors(message: str, **context: Any) -> Iterator[None]:
    try:
        yield
    except StaleDataError as e:
        logger.info("Concurrent modification detected: %s | Context: %s", e, context)
        raise StaleWriteError(endpoint_id=context.get("endpoint_id")) from e
    except SQLAlchemyError as e:
        logger.error("Database error: %s | Context: %s", e, context, exc_info=True)
        raise DatabaseError(
            message=message,
            context={**context, "error_type": type(e).__name__},
        ) from e
