"""
Row store adapter over the SQLAlchemy tables.

Presents each table as an ordered sheet of rows addressed by 1-based
position (insertion order). Deleting a row shifts every later row up by
one position, so callers removing several rows must go from the highest
position to the lowest.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select

from .config import DatabaseConfig
from .models import TABLES
from ..models.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class RowStore:
    """Positional row access to the trips, legs, directory and geocode tables."""

    def __init__(self, db_config: DatabaseConfig):
        self.db = db_config

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    @staticmethod
    def _fields(model) -> List[str]:
        return [column.key for column in model.__table__.columns if column.key != "row_id"]

    def _to_dict(self, model, row) -> Dict[str, Any]:
        return {name: getattr(row, name) for name in self._fields(model)}

    def _check_column(self, model, column: str) -> None:
        if column not in self._fields(model):
            raise ValueError(f"Unknown column '{column}' for table {model.__tablename__}")

    def _row_id_at(self, session, model, position: int) -> int:
        if position < 1:
            raise IndexError(f"Row position must be >= 1, got {position}")
        row_id = session.execute(
            select(model.row_id).order_by(model.row_id).offset(position - 1).limit(1)
        ).scalar_one_or_none()
        if row_id is None:
            raise IndexError(f"No row at position {position} in {model.__tablename__}")
        return row_id

    def ensure_available(self) -> None:
        """
        Raise StoreUnavailableError unless every table exists.

        Raises:
            StoreUnavailableError: If the database is unreachable or tables are missing
        """
        try:
            missing = self.db.missing_tables()
        except Exception as e:
            raise StoreUnavailableError(f"Row store unreachable: {e}") from e
        if missing:
            raise StoreUnavailableError(f"Missing tables: {', '.join(sorted(missing))}")

    def get_rows(self, table: str) -> List[Dict[str, Any]]:
        """All rows of ``table`` in position order (header excluded)."""
        model = self._model(table)
        with self.db.get_session_context() as session:
            rows = session.execute(select(model).order_by(model.row_id)).scalars().all()
            return [self._to_dict(model, row) for row in rows]

    def get_row(self, table: str, position: int) -> Dict[str, Any]:
        """The row at ``position``; raises IndexError when out of range."""
        model = self._model(table)
        with self.db.get_session_context() as session:
            row_id = self._row_id_at(session, model, position)
            return self._to_dict(model, session.get(model, row_id))

    def append_row(self, table: str, fields: Dict[str, Any]) -> int:
        """Append a row; returns its position."""
        model = self._model(table)
        for column in fields:
            self._check_column(model, column)

        with self.db.get_session_context() as session:
            session.add(model(**fields))
            session.flush()
            position = session.execute(select(func.count()).select_from(model)).scalar_one()

        logger.debug(f"Appended row {position} to {table}")
        return position

    def update_cell(self, table: str, position: int, column: str, value: Any) -> None:
        """Overwrite one cell of the row at ``position``."""
        model = self._model(table)
        self._check_column(model, column)

        with self.db.get_session_context() as session:
            row_id = self._row_id_at(session, model, position)
            row = session.get(model, row_id)
            setattr(row, column, value)

    def delete_row(self, table: str, position: int) -> None:
        """Delete the row at ``position``; later rows shift up by one."""
        model = self._model(table)
        with self.db.get_session_context() as session:
            row_id = self._row_id_at(session, model, position)
            session.execute(delete(model).where(model.row_id == row_id))

        logger.debug(f"Deleted row {position} from {table}")

    def _first_match_id(self, session, model, column: str, value: Any) -> Optional[int]:
        attr = getattr(model, column)
        candidates = session.execute(
            select(model.row_id, attr).where(attr == value).order_by(model.row_id)
        ).all()
        # exact, case-sensitive equality whatever the collation
        return next((rid for rid, stored in candidates if stored == value), None)

    def find_exact_match(self, table: str, value: Any, column: str) -> Optional[int]:
        """
        Position of the first row whose ``column`` equals ``value``.

        Comparison is exact and case-sensitive regardless of the backend's
        collation.
        """
        model = self._model(table)
        self._check_column(model, column)

        with self.db.get_session_context() as session:
            row_id = self._first_match_id(session, model, column, value)
            if row_id is None:
                return None
            return session.execute(
                select(func.count()).select_from(model).where(model.row_id <= row_id)
            ).scalar_one()

    def find_row(self, table: str, value: Any, column: str) -> Optional[Dict[str, Any]]:
        """
        First row whose ``column`` equals ``value``, read in one transaction.

        Same matching rules as ``find_exact_match``; returns the row fields
        instead of a position.
        """
        model = self._model(table)
        self._check_column(model, column)

        with self.db.get_session_context() as session:
            row_id = self._first_match_id(session, model, column, value)
            if row_id is None:
                return None
            return self._to_dict(model, session.get(model, row_id))

    def clear(self, table: str) -> int:
        """Delete every row of ``table``; returns how many were removed."""
        model = self._model(table)
        with self.db.get_session_context() as session:
            result = session.execute(delete(model))
            removed = result.rowcount or 0

        logger.info(f"Cleared {removed} rows from {table}")
        return removed

    def replace_all(self, table: str, rows: Iterable[Dict[str, Any]]) -> int:
        """Replace the whole table contents in a single transaction."""
        model = self._model(table)
        rows = list(rows)
        for fields in rows:
            for column in fields:
                self._check_column(model, column)

        with self.db.get_session_context() as session:
            session.execute(delete(model))
            session.add_all(model(**fields) for fields in rows)

        logger.info(f"Replaced {table} with {len(rows)} rows")
        return len(rows)
