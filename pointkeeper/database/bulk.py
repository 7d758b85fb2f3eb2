"""
pointkeeper.database.bulk — Typed Bulk-Insert Builder
======================================================

Fan-out and honor awards write many rows at once.  Instead of building a
``VALUES ($1, $2, ...), ($5, ...)`` string by hand, callers declare a
fixed column set and append plain tuples::

    rows = BulkInsert(Point, ("participant_id", "group_id", "organization_id",
                              "value", "effective_date"))
    for member_id in eligible:
        rows.add((member_id, group_id, org_id, 5, day))
    rows.execute(session)

SQLAlchemy turns the parameter list into a single executemany
("insertmanyvalues") round trip.  :meth:`BulkInsert.execute_returning`
also hands back generated primary keys in the same order the rows were
added.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import insert
from sqlalchemy.orm import Session


class BulkInsert:
    """Accumulate row tuples for one model and insert them in one statement."""

    def __init__(self, model: type, columns: Sequence[str]) -> None:
        table_columns = set(model.__table__.columns.keys())
        unknown = [c for c in columns if c not in table_columns]
        if unknown:
            raise ValueError(
                f"{model.__name__} has no column(s): {', '.join(unknown)}"
            )
        self.model = model
        self.columns: tuple[str, ...] = tuple(columns)
        self._rows: list[tuple[Any, ...]] = []

    def add(self, row: Sequence[Any]) -> None:
        if len(row) != len(self.columns):
            raise ValueError(
                f"Expected {len(self.columns)} values "
                f"({', '.join(self.columns)}), got {len(row)}"
            )
        self._rows.append(tuple(row))

    def extend(self, rows: Iterable[Sequence[Any]]) -> None:
        for row in rows:
            self.add(row)

    def __len__(self) -> int:
        return len(self._rows)

    def _params(self) -> list[dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self._rows]

    def execute(self, session: Session) -> int:
        """Insert every queued row.  Returns the number of rows written."""
        if not self._rows:
            return 0
        session.execute(insert(self.model), self._params())
        return len(self._rows)

    def execute_returning(self, session: Session, column: str = "id") -> list[Any]:
        """Insert every queued row and return *column* per row, in add order."""
        if not self._rows:
            return []
        stmt = insert(self.model).returning(
            getattr(self.model, column), sort_by_parameter_order=True
        )
        return list(session.scalars(stmt, self._params()))
