"""
Reconciliation pipeline orchestration.

Coordinates the flow: query profiles → collect join keys → resolve records →
plan updates → dispatch updates
"""

from .config import Settings
from .core.mappings import REQUIRED_FIELDS, SYNC_TIMESTAMP_FIELD
from .core.models import AuthoritativeRecord, PipelineResult, PlannedUpdate, ProfileRow
from .core.planner import UpdatePlanner
from .core.values import is_blankish
from .observability import metrics
from .observability.logger import get_logger, log_operation
from .remote.engage import ProfileBatchUpdater
from .remote.query_builder import build_missing_fields_query
from .remote.query_client import JQLClient
from .warehouse.connection import DatabaseConnectionPool
from .warehouse.resolver import RecordResolver

logger = get_logger(__name__)


class ReconciliationPipeline:
    """
    Backfills missing subscription fields on analytics profiles.

    Flow:
    1. Query the analytics platform for profiles missing a required field
    2. Collect and deduplicate their join keys
    3. Resolve the keys to database records in batches
    4. Plan a minimal update per profile
    5. Deliver the updates in paced batches (or simulate them)

    The run stops early, without touching the update endpoint, when the
    query returns nothing or no update is needed.
    """

    def __init__(
        self,
        settings: Settings,
        query_client: JQLClient | None = None,
        pool: DatabaseConnectionPool | None = None,
        updater: ProfileBatchUpdater | None = None,
    ):
        """
        Initialize reconciliation pipeline.

        Args:
            settings: Runtime settings
            query_client: JQL client (built from settings if None)
            pool: Database pool, opened only for the resolution stage
            updater: Batch updater (built from settings if None)
        """
        self.settings = settings
        self.query_client = query_client or JQLClient(
            project_id=settings.project_id,
            username=settings.service_username,
            secret=settings.service_secret,
            url=settings.jql_url,
            timeout=settings.http_timeout_seconds,
        )
        self.pool = pool or DatabaseConnectionPool(
            uri=settings.db_uri,
            database=settings.db_name,
        )
        self.updater = updater or ProfileBatchUpdater(
            token=settings.token,
            url=settings.engage_url,
            batch_size=settings.batch_update_size,
            pause_seconds=settings.pause_seconds,
            dry_run=settings.dry_run,
            timeout=settings.http_timeout_seconds,
        )
        self.planner = UpdatePlanner(
            run_id=settings.run_id,
            force_overwrite_if_different=settings.force_update_if_different,
        )

    def run(self) -> PipelineResult:
        """
        Execute one reconciliation run.

        Returns:
            PipelineResult with the counters of every stage

        Raises:
            RemoteQueryError: If the query endpoint fails
            DatabaseError: If the database connection or a lookup fails
        """
        settings = self.settings
        result = PipelineResult(run_id=settings.run_id, dry_run=settings.dry_run)

        logger.info(f"Checking profiles with missing fields (any of): {', '.join(REQUIRED_FIELDS)}")

        # Step 1: Query profiles
        with log_operation("Missing-fields query", logger=logger), \
                metrics.track_duration(metrics.stage_duration_seconds, stage="query"):
            script = build_missing_fields_query(
                REQUIRED_FIELDS, settings.max_jql_results, settings.aid_prop_name
            )
            rows = self.query_client.execute(script)

        result.profiles_queried = len(rows)
        metrics.increment_counter(metrics.profiles_queried_total, len(rows))

        if not rows:
            logger.info("No profiles with missing fields.")
            result.stopped_early = True
            return result

        logger.info(f"Query returned {len(rows)} profiles with at least one missing field")

        result.rows_without_join_key = sum(1 for row in rows if is_blankish(row.join_key))
        logger.info(f'Profiles without "{settings.aid_prop_name}": {result.rows_without_join_key}')

        # Step 2: Collect join keys
        keys = self.collect_join_keys(rows)
        if settings.dry_run and settings.dry_run_limit > 0 and len(keys) > settings.dry_run_limit:
            logger.info(f"[DRY_RUN] Limiting lookup to {settings.dry_run_limit} of {len(keys)} keys")
            keys = keys[:settings.dry_run_limit]

        result.keys_requested = len(keys)
        logger.info(f"Join keys to look up in the database: {len(keys)}")

        # Step 3: Resolve records
        records_by_key = self.resolve_records(keys)
        result.keys_resolved = len(records_by_key)
        logger.info(f"Found {len(records_by_key)} database records (of {len(keys)} requested)")

        # Step 4: Plan updates
        updates = self.plan_updates(rows, records_by_key, result)
        result.updates_planned = len(updates)
        metrics.increment_counter(metrics.planned_updates_total, len(updates))

        logger.info(f"No database record for join key: {result.rows_not_found}")
        logger.info(f"Updates to send: {len(updates)}")

        if not updates:
            logger.info("No useful database values to fill or update.")
            result.stopped_early = True
            return result

        # Step 5: Dispatch
        mode = "DRY_RUN (simulation)" if settings.dry_run else "LIVE (updating)"
        logger.info(
            f"Mode: {mode} - batchSize={settings.batch_update_size} "
            f"pauseMs={settings.batch_update_pause_ms}"
        )
        with log_operation("Profile batch update", logger=logger, updates=len(updates)), \
                metrics.track_duration(metrics.stage_duration_seconds, stage="dispatch"):
            result.updates_sent = self.updater.send(updates)
        result.failed_batches = len(self.updater.failed_batches)

        if settings.dry_run:
            logger.info(f"[DRY_RUN] Simulated updates for {result.updates_sent} profiles.")
        else:
            logger.info(f"Profiles updated successfully: {result.updates_sent}")
            logger.info(f"Run stamp ({SYNC_TIMESTAMP_FIELD}): {settings.run_id}")

        return result

    def join_key_for(self, row: ProfileRow) -> str | None:
        """
        Return the join key used to look a profile up, if any.

        Falls back to the profile id when the join property is blank and
        the fallback is enabled.
        """
        if not is_blankish(row.join_key):
            return str(row.join_key)
        if self.settings.use_profile_id_fallback and not is_blankish(row.profile_id):
            return row.profile_id
        return None

    def collect_join_keys(self, rows: list[ProfileRow]) -> list[str]:
        """Distinct join keys in first-seen order."""
        keys: dict[str, None] = {}
        for row in rows:
            key = self.join_key_for(row)
            if key is not None:
                keys.setdefault(key, None)
        return list(keys)

    def resolve_records(self, keys: list[str]) -> dict[str, AuthoritativeRecord]:
        """
        Look keys up in the database, holding the connection only for the
        duration of the lookup.
        """
        if not keys:
            return {}

        with log_operation("Database lookup", logger=logger, keys=len(keys)), \
                metrics.track_duration(metrics.stage_duration_seconds, stage="resolve"):
            with self.pool as pool:
                resolver = RecordResolver(
                    pool,
                    table=self.settings.db_table,
                    key_fields=self.settings.db_key_fields,
                )
                resolution = resolver.resolve(
                    keys,
                    batch_size=self.settings.db_batch_size,
                    sample_limit=self.settings.db_sample_limit,
                )
        return resolution.records_by_key

    def plan_updates(
        self,
        rows: list[ProfileRow],
        records_by_key: dict[str, AuthoritativeRecord],
        result: PipelineResult,
    ) -> list[PlannedUpdate]:
        """
        Plan non-empty updates, counting each reason a row was skipped.
        """
        updates: list[PlannedUpdate] = []

        for row in rows:
            key = self.join_key_for(row)
            if key is None:
                metrics.increment_counter(metrics.rows_skipped_total, reason="no_join_key")
                continue

            record = records_by_key.get(key)
            if record is None:
                result.rows_not_found += 1
                metrics.increment_counter(metrics.rows_skipped_total, reason="not_found")
                continue

            update = self.planner.plan(record, row)
            if update.is_empty:
                result.rows_without_changes += 1
                metrics.increment_counter(metrics.rows_skipped_total, reason="no_changes")
                continue

            updates.append(update)

        return updates
