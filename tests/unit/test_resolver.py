"""
Unit tests for join key resolution against a fake connection pool.
"""

from unittest.mock import MagicMock

import pytest

from profile_sync.core.errors import DatabaseError
from profile_sync.warehouse.resolver import RecordResolver


def fake_pool(records: list[dict]) -> MagicMock:
    """
    Pool whose execute_query answers like the OR-of-ANY lookup.

    Each query parameter is the key batch for one key field, in order.
    """
    pool = MagicMock()
    key_fields: list[str] = []

    def execute_query(query, params):
        batch = set(params[0])
        return [
            dict(record) for record in records
            if any(record.get(field) in batch for field in key_fields)
        ]

    pool.execute_query.side_effect = execute_query
    pool.key_fields = key_fields
    return pool


def make_resolver(pool: MagicMock, key_fields=("aid", "sourceId")) -> RecordResolver:
    pool.key_fields[:] = list(key_fields)
    return RecordResolver(pool, table="users", key_fields=key_fields)


class TestBuildQuery:
    """Tests for the generated lookup SQL"""

    def test_two_key_fields(self):
        resolver = RecordResolver(MagicMock(), table="users", key_fields=("aid", "sourceId"))
        text = resolver.build_query().as_string(None)

        assert text.startswith('SELECT "aid", "sourceId", "status", "plan", "expireDate"')
        assert 'FROM "users"' in text
        assert 'WHERE "aid" = ANY(%s) OR "sourceId" = ANY(%s)' in text

    def test_single_key_field(self):
        resolver = RecordResolver(MagicMock(), table="users", key_fields=("aid",))
        text = resolver.build_query().as_string(None)

        assert 'WHERE "aid" = ANY(%s)' in text
        assert "OR" not in text

    def test_schema_qualified_table(self):
        resolver = RecordResolver(MagicMock(), table="app.users", key_fields=("aid",))
        assert 'FROM "app"."users"' in resolver.build_query().as_string(None)

    @pytest.mark.parametrize("key_fields", [(), ("a", "b", "c")])
    def test_key_field_count_validated(self, key_fields):
        with pytest.raises(ValueError):
            RecordResolver(MagicMock(), table="users", key_fields=key_fields)

    def test_projection_excludes_duplicates(self):
        resolver = RecordResolver(MagicMock(), table="users", key_fields=("aid",),
                                  source_fields=["aid", "plan"])
        assert resolver.projection == ["aid", "plan"]


class TestResolve:
    """Tests for RecordResolver.resolve"""

    def test_batches_keys(self):
        pool = fake_pool([])
        resolver = make_resolver(pool)

        resolver.resolve([f"K{i}" for i in range(25)], batch_size=10)

        batches = [call.args[1][0] for call in pool.execute_query.call_args_list]
        assert [len(b) for b in batches] == [10, 10, 5]
        # one array parameter per key field
        assert all(len(call.args[1]) == 2 for call in pool.execute_query.call_args_list)

    def test_record_indexed_under_both_keys(self):
        pool = fake_pool([{"aid": "A1", "sourceId": "S1", "plan": "gold"}])
        resolver = make_resolver(pool)

        result = resolver.resolve(["A1"], batch_size=10)

        assert set(result.records_by_key) == {"A1", "S1"}
        assert result.records_by_key["S1"]["plan"] == "gold"
        assert result.requested == 1
        assert result.resolved == 2
        assert result.hits_by_field == {"aid": 1, "sourceId": 0}

    def test_match_by_alias_key(self):
        pool = fake_pool([{"aid": None, "sourceId": "S9", "plan": "silver"}])
        resolver = make_resolver(pool)

        result = resolver.resolve(["S9", "X"], batch_size=10)

        assert list(result.records_by_key) == ["S9"]
        assert result.hits_by_field == {"aid": 0, "sourceId": 1}

    def test_last_record_wins_on_collision(self):
        pool = fake_pool([
            {"aid": "K1", "sourceId": None, "plan": "first"},
            {"aid": "Z", "sourceId": "K1", "plan": "second"},
        ])
        resolver = make_resolver(pool)

        result = resolver.resolve(["K1"], batch_size=10)

        assert result.records_by_key["K1"]["plan"] == "second"

    def test_numeric_key_values_are_stringified(self):
        pool = MagicMock()
        pool.execute_query.return_value = [{"aid": 101, "sourceId": "", "plan": "gold"}]
        resolver = RecordResolver(pool, table="users")

        result = resolver.resolve(["101"], batch_size=10)

        assert list(result.records_by_key) == ["101"]

    def test_sample_limit_does_not_change_result(self):
        records = [{"aid": f"A{i}", "sourceId": None, "plan": "gold"} for i in range(5)]
        with_sample = make_resolver(fake_pool(records)).resolve([f"A{i}" for i in range(5)], 2, sample_limit=3)
        without = make_resolver(fake_pool(records)).resolve([f"A{i}" for i in range(5)], 2, sample_limit=0)

        assert with_sample.records_by_key == without.records_by_key

    def test_empty_keys_issue_no_queries(self):
        pool = fake_pool([])
        result = make_resolver(pool).resolve([], batch_size=10)

        pool.execute_query.assert_not_called()
        assert result.resolved == 0

    def test_lookup_failure_propagates(self):
        pool = MagicMock()
        pool.execute_query.side_effect = [[], DatabaseError("connection lost")]
        resolver = RecordResolver(pool, table="users")

        with pytest.raises(DatabaseError):
            resolver.resolve(["A", "B"], batch_size=1)

        assert pool.execute_query.call_count == 2

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            RecordResolver(MagicMock(), table="users").resolve(["A"], batch_size=0)
