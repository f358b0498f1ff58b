"""
Error taxonomy for the chat data store.

Row-level ownership is enforced by filtering, so a row that exists but belongs
to another user is reported exactly like a missing row.
"""
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError


class StoreError(Exception):
    """Base class for all data store failures."""


class NotFoundOrUnauthorized(StoreError):
    """The row does not exist or is not owned by the requesting user."""


class StoreWriteFailure(StoreError):
    """An insert, update or delete was rejected by the store."""


class TransportFailure(StoreError):
    """The store (or the bot endpoint) could not be reached."""


def translate_store_error(exc: BaseException) -> StoreError:
    """
    Map a driver/ORM exception onto the store error taxonomy.

    Connection problems become TransportFailure, everything else the
    store rejected becomes StoreWriteFailure.
    """
    if isinstance(exc, StoreError):
        return exc
    if isinstance(exc, (OperationalError, InterfaceError, OSError)):
        return TransportFailure(str(exc))
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return TransportFailure(str(exc))
    if isinstance(exc, SQLAlchemyError):
        return StoreWriteFailure(str(exc))
    return StoreError(str(exc))


# Exceptions the repositories convert into return-value failure signals
STORE_EXCEPTIONS = (SQLAlchemyError, OSError)
