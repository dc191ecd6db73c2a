"""
Unit tests for the reconciliation pipeline with fake collaborators.
"""

from unittest.mock import MagicMock

import pytest

from profile_sync.config import Settings
from profile_sync.core.errors import DatabaseError, RemoteQueryError
from profile_sync.core.mappings import SYNC_TIMESTAMP_FIELD
from profile_sync.core.models import ProfileRow
from profile_sync.pipeline import ReconciliationPipeline


def row(profile_id, join_key=None, missing=None, props=None) -> ProfileRow:
    return ProfileRow(
        profile_id=profile_id,
        join_key=join_key,
        missing_fields=missing or ["plan"],
        existing_values=props or {},
    )


def fake_pool(records: list[dict]) -> MagicMock:
    """Pool that returns every record whose aid or sourceId was requested."""
    pool = MagicMock()
    pool.__enter__.return_value = pool
    pool.__exit__.return_value = False

    def execute_query(query, params):
        requested = set(params[0])
        return [r for r in records if r.get("aid") in requested or r.get("sourceId") in requested]

    pool.execute_query.side_effect = execute_query
    return pool


def fake_updater(sent: int | None = None) -> MagicMock:
    updater = MagicMock()
    updater.failed_batches = []
    updater.send.side_effect = lambda updates: len(updates) if sent is None else sent
    return updater


def make_pipeline(settings, rows, records=(), updater=None) -> ReconciliationPipeline:
    query_client = MagicMock()
    query_client.execute.return_value = rows
    return ReconciliationPipeline(
        settings,
        query_client=query_client,
        pool=fake_pool(list(records)),
        updater=updater or fake_updater(),
    )


class TestEarlyStop:
    """Runs that end before dispatch"""

    def test_no_rows_skips_database_and_updates(self, settings):
        pipeline = make_pipeline(settings, rows=[])

        result = pipeline.run()

        assert result.stopped_early is True
        assert result.profiles_queried == 0
        pipeline.pool.__enter__.assert_not_called()
        pipeline.updater.send.assert_not_called()

    def test_no_useful_values_skips_updates(self, settings):
        rows = [row("u1", "A1", missing=["plan"])]
        records = [{"aid": "A1", "sourceId": None, "plan": None}]
        pipeline = make_pipeline(settings, rows, records)

        result = pipeline.run()

        assert result.stopped_early is True
        assert result.rows_without_changes == 1
        pipeline.updater.send.assert_not_called()

    def test_only_rows_without_join_key_skips_database(self, settings):
        pipeline = make_pipeline(settings, rows=[row("u1", None), row("u2", "null")])

        result = pipeline.run()

        assert result.rows_without_join_key == 2
        assert result.keys_requested == 0
        pipeline.pool.__enter__.assert_not_called()


class TestCounters:
    """Skip reasons and totals"""

    def test_mixed_rows(self, settings):
        rows = [
            row("u1", "A1", missing=["plan"]),
            row("u2", "S2", missing=["status"]),
            row("u3", "A404", missing=["plan"]),
            row("u4", None, missing=["plan"]),
            row("u5", "A1", missing=["recurrence"]),
        ]
        records = [
            {"aid": "A1", "sourceId": None, "plan": "gold", "recurrence": None},
            {"aid": "A2", "sourceId": "S2", "status": "active"},
        ]
        pipeline = make_pipeline(settings, rows, records)

        result = pipeline.run()

        assert result.profiles_queried == 5
        assert result.rows_without_join_key == 1
        assert result.keys_requested == 3
        assert result.rows_not_found == 1
        assert result.rows_without_changes == 1
        assert result.updates_planned == 2
        assert result.updates_sent == 2
        assert result.stopped_early is False

        updates = pipeline.updater.send.call_args.args[0]
        assert [u.profile_id for u in updates] == ["u1", "u2"]
        assert updates[0].fields_to_set == {"plan": "gold", SYNC_TIMESTAMP_FIELD: "run-2025-11-17"}

    def test_join_keys_deduplicated_in_first_seen_order(self, settings):
        rows = [row("u1", "B"), row("u2", "A"), row("u3", "B")]
        pipeline = make_pipeline(settings, rows)

        assert pipeline.collect_join_keys(rows) == ["B", "A"]

    def test_failed_batches_reported(self, settings):
        updater = fake_updater(sent=0)
        updater.failed_batches = [MagicMock()]
        pipeline = make_pipeline(
            settings,
            [row("u1", "A1")],
            [{"aid": "A1", "plan": "gold"}],
            updater=updater,
        )

        result = pipeline.run()

        assert result.updates_sent == 0
        assert result.failed_batches == 1


class TestDryRunLimit:
    """DRY_RUN_LIMIT truncates the key list in dry-run mode only"""

    def test_limit_applies_in_dry_run(self, base_env):
        base_env.update({"DRY_RUN": "1", "DRY_RUN_LIMIT": "2"})
        settings = Settings.from_env(env=base_env)
        rows = [row(f"u{i}", f"A{i}") for i in range(5)]
        pipeline = make_pipeline(settings, rows)

        result = pipeline.run()

        assert result.keys_requested == 2
        params = pipeline.pool.execute_query.call_args.args[1]
        assert params[0] == ["A0", "A1"]

    def test_limit_ignored_in_live_mode(self, base_env):
        base_env["DRY_RUN_LIMIT"] = "2"
        settings = Settings.from_env(env=base_env)
        rows = [row(f"u{i}", f"A{i}") for i in range(5)]

        result = make_pipeline(settings, rows).run()

        assert result.keys_requested == 5


class TestProfileIdFallback:
    """Profiles without a join key may fall back to their profile id"""

    def test_fallback_enabled(self, base_env):
        base_env["FALLBACK_AID_EQUALS_DISTINCT"] = "true"
        settings = Settings.from_env(env=base_env)
        pipeline = make_pipeline(settings, [row("A7", None)], [{"aid": "A7", "plan": "gold"}])

        result = pipeline.run()

        assert result.keys_requested == 1
        assert result.updates_sent == 1
        assert pipeline.updater.send.call_args.args[0][0].profile_id == "A7"

    def test_fallback_disabled_by_default(self, settings):
        pipeline = make_pipeline(settings, [row("A7", None)], [{"aid": "A7", "plan": "gold"}])

        result = pipeline.run()

        assert result.keys_requested == 0
        pipeline.updater.send.assert_not_called()

    def test_fallback_requires_distinct_equals_aid(self, base_env):
        base_env.update({"FALLBACK_AID_EQUALS_DISTINCT": "true", "DISTINCT_EQUALS_AID": "false"})
        settings = Settings.from_env(env=base_env)
        pipeline = make_pipeline(settings, [row("A7", None)])

        assert pipeline.join_key_for(pipeline.query_client.execute.return_value[0]) is None


class TestFailures:
    """Fatal errors abort the run"""

    def test_query_error_propagates(self, settings):
        pipeline = make_pipeline(settings, rows=[])
        pipeline.query_client.execute.side_effect = RemoteQueryError(500, "boom")

        with pytest.raises(RemoteQueryError):
            pipeline.run()

        pipeline.updater.send.assert_not_called()

    def test_database_error_propagates_and_closes_pool(self, settings):
        pipeline = make_pipeline(settings, [row("u1", "A1")])
        pipeline.pool.execute_query.side_effect = DatabaseError("lost connection")

        with pytest.raises(DatabaseError):
            pipeline.run()

        pipeline.pool.__exit__.assert_called_once()
        pipeline.updater.send.assert_not_called()
