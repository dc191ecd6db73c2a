"""
Join key resolution against the operational database.

Looks records up by one or two key columns (e.g. aid OR sourceId) in
fixed-size batches and indexes every record under each key value it exposes.
"""

from typing import Any, Iterable

from psycopg import sql

from ..core.mappings import DEFAULT_KEY_FIELDS, TARGET_TO_SOURCE_FIELD
from ..core.models import AuthoritativeRecord, ResolutionResult
from ..observability import metrics
from ..observability.logger import get_logger
from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

PROGRESS_INTERVAL = 100_000


class RecordResolver:
    """
    Resolves join keys to authoritative database records.

    When two records expose the same key value, the one processed last wins;
    one representative record per key is all the planner needs.
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        table: str,
        key_fields: Iterable[str] = DEFAULT_KEY_FIELDS,
        source_fields: Iterable[str] | None = None,
    ):
        """
        Initialize record resolver.

        Args:
            pool: Open database connection pool
            table: Table holding the records, optionally schema-qualified
            key_fields: One or two key columns; a record matches when any of
                them holds a requested key
            source_fields: Non-key columns to project (defaults to the
                mapped source fields)
        """
        self.pool = pool
        self.table = table
        self.key_fields = tuple(key_fields)
        if not 1 <= len(self.key_fields) <= 2:
            raise ValueError(f"Expected 1 or 2 key fields, got {list(self.key_fields)}")

        fields = list(source_fields or TARGET_TO_SOURCE_FIELD.values())
        self.projection = list(self.key_fields) + [f for f in fields if f not in self.key_fields]

    def build_query(self) -> sql.Composed:
        """
        Build the batch lookup query.

        Every key field gets its own array parameter:
            SELECT ... FROM table WHERE "aid" = ANY(%s) OR "sourceId" = ANY(%s)
        """
        columns = sql.SQL(", ").join(sql.Identifier(name) for name in self.projection)
        table = sql.Identifier(*self.table.split("."))
        conditions = sql.SQL(" OR ").join(
            sql.SQL("{} = ANY(%s)").format(sql.Identifier(name)) for name in self.key_fields
        )
        return sql.SQL("SELECT {columns} FROM {table} WHERE {conditions}").format(
            columns=columns, table=table, conditions=conditions
        )

    def fetch_batch(self, keys: list[str]) -> list[AuthoritativeRecord]:
        """
        Fetch the records matching one batch of keys.

        Raises:
            DatabaseError: If the lookup fails
        """
        params = tuple(list(keys) for _ in self.key_fields)
        return self.pool.execute_query(self.build_query(), params)

    def resolve(
        self,
        keys: list[str],
        batch_size: int = 1000,
        sample_limit: int = 0,
    ) -> ResolutionResult:
        """
        Resolve join keys to records.

        Args:
            keys: Deduplicated join keys
            batch_size: Keys per database lookup
            sample_limit: Log up to this many resolved entries (diagnostic)

        Returns:
            ResolutionResult with the key -> record mapping and counters

        Raises:
            DatabaseError: If any batch lookup fails; nothing is retried
        """
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {batch_size}")

        records_by_key: dict[str, AuthoritativeRecord] = {}
        hits_by_field = {name: 0 for name in self.key_fields}
        processed = 0

        for start in range(0, len(keys), batch_size):
            batch = keys[start:start + batch_size]
            requested = set(batch)

            for record in self.fetch_batch(batch):
                for key_field in self.key_fields:
                    value = record.get(key_field)
                    if value is None or value == "":
                        continue
                    key = str(value)
                    records_by_key[key] = record
                    if key in requested:
                        hits_by_field[key_field] += 1

            processed += len(batch)
            if processed % PROGRESS_INTERVAL == 0 or start + batch_size >= len(keys):
                hits = ", ".join(f"{name}={count}" for name, count in hits_by_field.items())
                logger.info(
                    f"Database lookup: processed {processed}/{len(keys)}, "
                    f"found (unique) {len(records_by_key)}, hits {hits}"
                )

        result = ResolutionResult(
            records_by_key=records_by_key,
            requested=len(keys),
            resolved=len(records_by_key),
            hits_by_field=hits_by_field,
        )

        metrics.increment_counter(metrics.join_keys_total, result.requested, outcome="requested")
        metrics.increment_counter(metrics.join_keys_total, result.resolved, outcome="resolved")
        for name, count in hits_by_field.items():
            metrics.increment_counter(metrics.key_field_hits_total, count, key_field=name)

        if sample_limit > 0:
            self._log_sample(records_by_key, sample_limit)

        return result

    def _log_sample(self, records_by_key: dict[str, Any], sample_limit: int) -> None:
        logger.info(f"Resolved {len(records_by_key)} records - sample:")
        for shown, (key, record) in enumerate(records_by_key.items(), start=1):
            logger.info(f"{key}: {record}")
            if shown >= sample_limit:
                break
