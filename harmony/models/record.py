"""Base class for persisted entities saved inside caller-owned transactions."""

import logging
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any, ClassVar, Self

from sqlalchemy import Table, select

from harmony.db import Transaction
from harmony.errors import ValidationError

logger = logging.getLogger(__name__)

_BOOKKEEPING_FIELDS = {"id", "state", "created_at", "updated_at"}


class RecordState(StrEnum):
    UNSAVED = "unsaved"
    PERSISTED = "persisted"


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(kw_only=True)
class Record:
    """A row in ``table`` with an ``id`` primary key and creation/update stamps.

    Subclasses are keyword-only dataclasses that set ``table`` and may
    override :meth:`validate`. Whether :meth:`save` inserts or updates is
    decided by ``state``, never by inspecting ``id``.
    """

    table: ClassVar[Table]

    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    state: RecordState = field(default=RecordState.UNSAVED, compare=False)

    def validate(self) -> list[str] | None:
        """Return a list of validation errors, or None if the record is valid."""

        return None

    def _row(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in _BOOKKEEPING_FIELDS}

    def _next_timestamp(self) -> datetime:
        now = datetime.now(UTC)
        if self.updated_at is not None and now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        return now

    def save(self, transaction: Transaction) -> None:
        """Validate, then insert (new record) or update (persisted record).

        All statements run on ``transaction``; committing or rolling back is
        left to the caller so several records can be saved atomically.

        Raises:
            ValidationError: if :meth:`validate` reports errors.
        """

        errors = self.validate()
        if errors:
            raise ValidationError(f"{type(self).__name__} record is invalid: {errors}", errors)

        timestamp = self._next_timestamp()
        if self.state is RecordState.UNSAVED:
            result = transaction.execute(
                self.table.insert().values(**self._row(), created_at=timestamp, updated_at=timestamp)
            )
            self.id = result.inserted_primary_key[0]
            self.created_at = timestamp
            self.updated_at = timestamp
            self.state = RecordState.PERSISTED
            logger.debug("Inserted %s %s", type(self).__name__, self.id)
        else:
            transaction.execute(
                self.table.update().where(self.table.c.id == self.id).values(**self._row(), updated_at=timestamp)
            )
            self.updated_at = timestamp
            logger.debug("Updated %s %s", type(self).__name__, self.id)

    @classmethod
    def _from_row(cls, row: Any) -> Self:
        values = dict(row._mapping)
        values["created_at"] = _utc(values.get("created_at"))
        values["updated_at"] = _utc(values.get("updated_at"))
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in values.items() if key in names}, state=RecordState.PERSISTED)

    @classmethod
    def find(cls, transaction: Transaction, **criteria: Any) -> list[Self]:
        """Load persisted records whose columns equal ``criteria``, oldest first."""

        statement = select(cls.table)
        for column, value in criteria.items():
            statement = statement.where(cls.table.c[column] == value)
        statement = statement.order_by(cls.table.c.id)
        return [cls._from_row(row) for row in transaction.execute(statement)]

    @classmethod
    def find_one(cls, transaction: Transaction, **criteria: Any) -> Self | None:
        records = cls.find(transaction, **criteria)
        return records[0] if records else None
