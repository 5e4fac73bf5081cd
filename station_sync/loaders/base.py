"""Base loader interface for target stores."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional
import itertools
import logging

from ..errors import TargetConnectionError
from ..models.record import SourceRow

logger = logging.getLogger(__name__)


class BaseLoader(ABC):
    """
    Base class for target loaders.

    A loader wraps one open connection to the target store. It issues
    single-row statements and exposes transaction and savepoint control;
    it does not decide what to do with failures, which propagate to the
    caller as the driver raised them.
    """

    def __init__(self, target_service: str):
        """
        Initialize the loader.

        Args:
            target_service: Name of the target store, used in logs
        """
        self.target_service = target_service
        self._savepoint_ids = itertools.count(1)

    def open(self) -> "BaseLoader":
        """Acquire the underlying connection."""
        return self

    def close(self) -> None:
        """Release the underlying connection."""

    def __enter__(self) -> "BaseLoader":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @abstractmethod
    def execute(self, sql: str, params: Optional[List[Any]] = None) -> int:
        """
        Execute one statement.

        Returns:
            Number of affected rows
        """
        pass

    @abstractmethod
    def insert_row(self, table: str, row: SourceRow, ignore: bool = False) -> int:
        """
        Insert one row with bound parameters.

        Args:
            table: Target table
            row: Column -> value, already serialized for the driver
            ignore: Use INSERT IGNORE so duplicate keys are skipped

        Returns:
            Number of inserted rows (0 when ignored)
        """
        pass

    @abstractmethod
    def find_by_pk(self, table: str, key: str, value: Any) -> Optional[Dict[str, Any]]:
        """Fetch one row by primary key, or None when absent."""
        pass

    @abstractmethod
    def update_row(self, table: str, key: str, value: Any, row: SourceRow) -> int:
        """Update the row identified by key = value with the given columns."""
        pass

    @abstractmethod
    def count_rows(self, table: str) -> int:
        """Count rows in a table."""
        pass

    @abstractmethod
    def begin(self) -> None:
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass

    def create_savepoint(self, name: str) -> None:
        self.execute(f"SAVEPOINT {name}")

    def rollback_to_savepoint(self, name: str) -> None:
        self.execute(f"ROLLBACK TO SAVEPOINT {name}")

    def release_savepoint(self, name: str) -> None:
        self.execute(f"RELEASE SAVEPOINT {name}")

    @contextmanager
    def transaction(self) -> Iterator["BaseLoader"]:
        """Commit on success, roll back and re-raise on any error."""
        self.begin()
        try:
            yield self
        except BaseException:
            try:
                self.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback failed on {self.target_service}: {rollback_error}")
            raise
        else:
            self.commit()

    @contextmanager
    def savepoint(self) -> Iterator[str]:
        """
        Run a block inside a savepoint.

        An error inside the block rolls back to the savepoint and is
        re-raised; the enclosing transaction stays usable.
        """
        name = f"sp_{next(self._savepoint_ids)}"
        self.create_savepoint(name)
        try:
            yield name
        except TargetConnectionError:
            raise
        except Exception:
            self.rollback_to_savepoint(name)
            raise
        else:
            self.release_savepoint(name)
