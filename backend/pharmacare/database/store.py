"""
Store capabilities injected into every core component.

Two named capability levels:
- standard: request-scoped reads and writes a principal may perform
- elevated: service-level writes (entitlement propagation, mirror sync)
  that must bypass row-level restrictions

Components receive a StoreCapabilities instance in their constructor and
open short-lived sessions from it. There is no module-level client and no
implicit fallback from one level to the other.

Usage:
    with store.standard() as session:
        session.query(User).filter(User.id == principal_id).first()
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Underlying data store failure."""
    pass


class StoreUnavailableError(StoreError):
    """Data store is not configured or cannot be reached."""
    pass


@dataclass(frozen=True)
class StoreCapabilities:
    """Named session factories for the standard and elevated store levels."""

    standard_factory: sessionmaker
    elevated_factory: sessionmaker

    @contextmanager
    def standard(self) -> Iterator[Session]:
        """Open a session with standard privileges."""
        with self._open(self.standard_factory, "standard") as session:
            yield session

    @contextmanager
    def elevated(self) -> Iterator[Session]:
        """Open a session with elevated (service) privileges."""
        with self._open(self.elevated_factory, "elevated") as session:
            yield session

    @staticmethod
    @contextmanager
    def _open(factory: sessionmaker, level: str) -> Iterator[Session]:
        session = factory()
        try:
            yield session
        except OperationalError as e:
            session.rollback()
            logger.error("Store unavailable", extra={"capability": level}, exc_info=True)
            raise StoreUnavailableError(str(e)) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Store operation failed", extra={"capability": level}, exc_info=True)
            raise StoreError(str(e)) from e
        finally:
            session.close()
