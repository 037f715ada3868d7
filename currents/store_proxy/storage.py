"""SQLAlchemy row storage for the store proxy.

All collections share one table keyed by (collection, row_key); the row
itself is a JSON document. Upserts merge columns into the stored document,
so replaying the same upsert leaves the row unchanged.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column, DateTime, String, create_engine, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from currents.remote.base import COLLECTION_KEYS

logger = logging.getLogger(__name__)

Base = declarative_base()


class StorageError(Exception):
    """Base exception for storage operations."""


class UnknownCollectionError(StorageError):
    """Collection is not part of the schema."""


class KeyMismatchError(StorageError):
    """Row body carries a different primary key than the URL."""


class RowRecord(Base):
    __tablename__ = "rows"

    collection = Column(String(64), primary_key=True)
    row_key = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


def _engine_for(database_url: str):
    if database_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url)


class RowStorage:
    """Handles all row reads and writes for the store proxy."""

    def __init__(self, database_url: str = "sqlite:///:memory:"):
        self.engine = _engine_for(database_url)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _key_column(collection: str) -> str:
        try:
            return COLLECTION_KEYS[collection]
        except KeyError:
            raise UnknownCollectionError(f"Unknown collection: {collection}")

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Health check failed: {e}")
            return False

    def upsert(
        self, collection: str, key: str, row: dict[str, Any]
    ) -> tuple[bool, dict[str, Any]]:
        """
        Insert a row or merge its columns into the existing one.

        Returns:
            Tuple of (is_new, stored_row)

        Raises:
            UnknownCollectionError: If the collection is unknown
            KeyMismatchError: If the body's key column disagrees with ``key``
            StorageError: For database errors
        """
        column = self._key_column(collection)
        if row.get(column) is not None and str(row[column]) != key:
            raise KeyMismatchError(
                f"Row {column}={row[column]!r} does not match key {key!r}"
            )
        row = {**row, column: row.get(column, key)}

        try:
            with self.SessionLocal() as db:
                record = db.get(RowRecord, (collection, key))
                is_new = record is None
                if is_new:
                    record = RowRecord(collection=collection, row_key=key, data=row)
                    db.add(record)
                else:
                    # Assign a new dict so the JSON column is flagged dirty
                    record.data = {**record.data, **row}
                    record.updated_at = datetime.now(timezone.utc)
                db.commit()
                return is_new, dict(record.data)
        except SQLAlchemyError as e:
            logger.error(f"Error upserting {collection}/{key}: {e}")
            raise StorageError(f"Failed to upsert row: {e}")

    def update(
        self, collection: str, key: str, fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        """
        Merge ``fields`` into an existing row.

        Returns:
            The updated row, or None if no row has this key
        """
        column = self._key_column(collection)
        fields = {k: v for k, v in fields.items() if k != column}

        try:
            with self.SessionLocal() as db:
                record = db.get(RowRecord, (collection, key))
                if record is None:
                    return None
                record.data = {**record.data, **fields}
                record.updated_at = datetime.now(timezone.utc)
                db.commit()
                return dict(record.data)
        except SQLAlchemyError as e:
            logger.error(f"Error updating {collection}/{key}: {e}")
            raise StorageError(f"Failed to update row: {e}")

    def delete(self, collection: str, key: str) -> bool:
        """
        Delete a row.

        Returns:
            True if a row was removed, False if it did not exist
        """
        self._key_column(collection)
        try:
            with self.SessionLocal() as db:
                record = db.get(RowRecord, (collection, key))
                if record is None:
                    return False
                db.delete(record)
                db.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"Error deleting {collection}/{key}: {e}")
            raise StorageError(f"Failed to delete row: {e}")

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        self._key_column(collection)
        try:
            with self.SessionLocal() as db:
                record = db.get(RowRecord, (collection, key))
                return dict(record.data) if record else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read row: {e}")

    def list_rows(self, collection: str) -> list[dict[str, Any]]:
        self._key_column(collection)
        try:
            with self.SessionLocal() as db:
                records = db.scalars(
                    select(RowRecord)
                    .where(RowRecord.collection == collection)
                    .order_by(RowRecord.row_key)
                ).all()
                return [dict(record.data) for record in records]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list rows: {e}")
