from abc import ABC, abstractmethod
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator

from sqlalchemy import func

from .config import DatabaseConfig
from .database import check_connection, create_tables, get_db_context, setup_db_conn
from .models import Flag
from .schemas import FlagRecord, FlagStatus
from .shared.logs import logger

# Keeps IN (...) clauses below the bound parameter limits of SQLite and PostgreSQL.
CHUNK_SIZE = 500


class FlagStore(ABC):
    """
    Durable record of flags and their lifecycle status. The submission engine depends only
    on this interface, never on a concrete backend.
    """

    @abstractmethod
    def setup(self) -> None:
        """Idempotently ensures the schema exists. Raises if the store is unusable."""

    @abstractmethod
    def get_unsent_flags(self) -> list[FlagRecord]:
        """Returns a snapshot of all flags currently in the unsent status, ordered by id."""

    @abstractmethod
    def set_sent_flags(self, flag_ids: set[int]) -> int:
        """
        Atomically marks the given unsent flags as sent and clears `flag_ids` on success.
        Returns the number of flags that transitioned.
        """

    @abstractmethod
    def set_invalid_flags(self, flag_ids: set[int]) -> int:
        """
        Atomically marks the given unsent flags as invalid and clears `flag_ids` on success.
        Returns the number of flags that transitioned.
        """

    @abstractmethod
    def add_flags(self, values: Iterable[str], group: int = 0) -> int:
        """Stores new unsent flags, skipping values that are already stored. Returns the number inserted."""

    @abstractmethod
    def count_by_status(self) -> dict[FlagStatus, int]:
        """Returns the number of stored flags per status, including statuses with no flags."""


class SQLAlchemyFlagStore(FlagStore):
    """
    Flag store backed by any database supported by SQLAlchemy.

    Status updates only touch rows that are still unsent, so terminal statuses are never
    overwritten and repeating an update is a no-op.
    """

    def __init__(self, url: str, **engine_kwargs) -> None:
        self.url = url
        self.engine, self.SessionLocal = setup_db_conn(url, **engine_kwargs)

    def setup(self) -> None:
        logger.info("Creating tables...")
        create_tables(self.engine)
        check_connection(self.engine)
        logger.info("Database connection established.")

    def get_unsent_flags(self) -> list[FlagRecord]:
        with get_db_context(self.SessionLocal) as db:
            rows = (
                db.query(Flag)
                .filter(Flag.status == FlagStatus.UNSENT.value)
                .order_by(Flag.id)
                .all()
            )
            flags = [
                FlagRecord(
                    id=row.id,
                    value=row.value,
                    group=row.group_id,
                    status=FlagStatus(row.status),
                )
                for row in rows
            ]

        logger.debug("Fetched {count} unsent flags.", count=len(flags))
        return flags

    def set_sent_flags(self, flag_ids: set[int]) -> int:
        return self._set_status(flag_ids, FlagStatus.SENT)

    def set_invalid_flags(self, flag_ids: set[int]) -> int:
        return self._set_status(flag_ids, FlagStatus.INVALID)

    def _set_status(self, flag_ids: set[int], status: FlagStatus) -> int:
        if not flag_ids:
            return 0

        updated_count = 0
        with get_db_context(self.SessionLocal) as db:
            for chunk in _chunks(sorted(flag_ids), CHUNK_SIZE):
                updated_count += (
                    db.query(Flag)
                    .filter(
                        Flag.id.in_(chunk),
                        Flag.status == FlagStatus.UNSENT.value,
                    )
                    .update({Flag.status: status.value}, synchronize_session=False)
                )

        logger.debug(
            "Marked {count} flags as {status}.",
            count=updated_count,
            status=status.value,
        )
        flag_ids.clear()
        return updated_count

    def add_flags(self, values: Iterable[str], group: int = 0) -> int:
        values = list(dict.fromkeys(values))
        if not values:
            return 0

        with get_db_context(self.SessionLocal) as db:
            existing: set[str] = set()
            for chunk in _chunks(values, CHUNK_SIZE):
                existing.update(
                    value
                    for (value,) in db.query(Flag.value).filter(Flag.value.in_(chunk))
                )

            new_flags = [
                Flag(value=value, group_id=group, status=FlagStatus.UNSENT.value)
                for value in values
                if value not in existing
            ]
            db.add_all(new_flags)

        return len(new_flags)

    def count_by_status(self) -> dict[FlagStatus, int]:
        counts = {status: 0 for status in FlagStatus}
        with get_db_context(self.SessionLocal) as db:
            for status, count in db.query(Flag.status, func.count(Flag.id)).group_by(
                Flag.status
            ):
                counts[FlagStatus(status)] = count
        return counts


class SqliteFlagStore(SQLAlchemyFlagStore):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(
            "sqlite:///%s" % self.path.resolve().as_posix(),
            connect_args={"check_same_thread": False},
        )


class PostgresFlagStore(SQLAlchemyFlagStore):
    def __init__(self, dsn: str) -> None:
        super().__init__(dsn, pool_pre_ping=True)


def create_store(config: DatabaseConfig) -> FlagStore:
    """Selects the backend configured in the database section."""
    if config.postgres is not None:
        logger.info(
            "Using PostgreSQL database <b>{name}</> at <b>{host}:{port}</>.",
            name=config.postgres.name,
            host=config.postgres.host,
            port=config.postgres.port,
        )
        return PostgresFlagStore(config.postgres.dsn())

    logger.info("Using SQLite database <b>{path}</>.", path=config.sqlite)
    return SqliteFlagStore(config.sqlite)


def _chunks(items: list, size: int) -> Iterator[list]:
    iterator = iter(items)
    while chunk := list(islice(iterator, size)):
        yield chunk
