import logging
from contextlib import contextmanager
from typing import Optional, TypeVar, Generic, Type

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from database.db_utils import get_db_connection
from database.repositories.exceptions import (
    RepositoryError,
    DatabaseConnectionError,
    DuplicateEntityError,
)

logger = logging.getLogger(__name__)

# Type variable for ORM models
T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Base repository class providing common database operations and connection management.
    This class handles engine lookup, transaction management, and common CRUD operations.
    """

    def __init__(self, model_class: Type[T] = None, engine: Optional[Engine] = None):
        """
        Initialize the repository.

        Args:
            model_class: The SQLAlchemy model class this repository manages (optional)
            engine: Engine to use instead of the process-wide cached one (optional)
        """
        self._engine: Optional[Engine] = engine
        self.model_class = model_class
        self._session_factory = None

    @property
    def engine(self) -> Engine:
        """Lazy load the database engine."""
        if self._engine is None:
            self._engine = get_db_connection()
            if self._engine is None:
                raise DatabaseConnectionError("Failed to obtain database connection")
        return self._engine

    @property
    def session_factory(self):
        """Lazy load the session factory."""
        if self._session_factory is None:
            # Entities returned from a session stay readable after commit
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._session_factory

    @contextmanager
    def session(self) -> Session:
        """
        Context manager for ORM sessions.
        Handles commit/rollback automatically.
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.error(f"Integrity Error in session: {e}")
            if "unique constraint" in str(e).lower():
                raise DuplicateEntityError(f"Duplicate entity: {e}")
            raise RepositoryError(f"Database integrity error: {e}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database Error in session: {e}")
            raise RepositoryError(f"Database error: {e}")
        except Exception as e:
            session.rollback()
            logger.error(f"Unexpected error in session: {e}")
            raise
        finally:
            session.close()

    # Common CRUD Patterns

    def get_by_id(self, entity_id) -> Optional[T]:
        """Fetch a single entity by primary key."""
        with self.session() as session:
            return session.get(self.model_class, entity_id)

    def create(self, entity: T) -> T:
        """Create a new entity."""
        with self.session() as session:
            session.add(entity)
            session.flush()
            return entity
