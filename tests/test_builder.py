"""QueryBuilder stages and execution against stub stores."""

import asyncio

import pytest

from sieveql import QueryBuilder, build_query
from sieveql.config import QueryConfig
from sieveql.core.ordering import Direction, SortDirective
from sieveql.core.pagination import PaginationSpec
from sieveql.core.projection import Projection
from sieveql.errors import InvalidPageSizeError, MixedProjectionError, QueryExecutionError
from sieveql.store import RecordStore


class RecordingStore(RecordStore):
    """Returns canned results and remembers what it was asked."""

    def __init__(self, records=None, total=0, delay=0.0):
        self.records = list(records or [])
        self.total = total
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(self.delay)
        self.in_flight -= 1

    async def find(self, entity, plan):
        self.calls.append(("find", entity, plan))
        await self._enter()
        return self.records

    async def count(self, entity, where):
        self.calls.append(("count", entity, where))
        await self._enter()
        return self.total


class FailingCountStore(RecordingStore):
    def __init__(self, error):
        super().__init__(delay=0)
        self.error = error
        self.find_cancelled = False

    async def find(self, entity, plan):
        self.calls.append(("find", entity, plan))
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.find_cancelled = True
            raise
        return []

    async def count(self, entity, where):
        self.calls.append(("count", entity, where))
        raise self.error


class TestStages:
    def test_stages_return_new_builders(self):
        base = QueryBuilder(RecordingStore(), "user", {"status": "active", "sort": "name"})
        filtered = base.filter()
        sorted_ = filtered.sort()
        assert base.clauses == ()
        assert base.order_by == ()
        assert len(filtered.clauses) == 1
        assert filtered.order_by == ()
        assert sorted_.order_by == (SortDirective("name"),)
        assert sorted_.clauses == filtered.clauses

    def test_query_is_snapshotted(self):
        params = {"status": "active"}
        builder = QueryBuilder(RecordingStore(), "user", params)
        params["status"] = "inactive"
        params["age"] = "5"
        assert builder.filter().where_dict() == {"status": "active"}

    def test_default_pagination_without_stage(self):
        builder = QueryBuilder(RecordingStore(), "user", {"page": "4"})
        assert builder.pagination == PaginationSpec(page=1, limit=10)
        assert builder.paginate().pagination == PaginationSpec(page=4, limit=10)

    def test_search_then_filter(self):
        builder = (
            QueryBuilder(RecordingStore(), "user", {"searchTerm": "ann", "status": "active", "age[gte]": "18"})
            .search(["name", "email"])
            .filter()
        )
        assert builder.where_dict() == {
            "AND": [
                {"OR": [
                    {"name": {"contains": "ann", "mode": "insensitive"}},
                    {"email": {"contains": "ann", "mode": "insensitive"}},
                ]},
                {"status": "active"},
                {"age": {"gte": 18}},
            ]
        }

    def test_search_without_term_is_noop(self):
        base = QueryBuilder(RecordingStore(), "user", {})
        assert base.search(["name"]) is base

    def test_custom_config_keys(self):
        config = QueryConfig(search_key="q", sort_key="order", default_sort="name")
        builder = QueryBuilder(RecordingStore(), "user", {"q": "x", "order": "-age", "searchTerm": "y"}, config)
        builder = builder.search(["name"]).filter().sort()
        # searchTerm is an ordinary field under this config
        assert builder.where_dict()["AND"][1] == {"searchTerm": "y"}
        assert builder.order_by == (SortDirective("age", Direction.DESC),)

    def test_fields_and_relations(self):
        builder = (
            QueryBuilder(RecordingStore(), "user", {"fields": "name,email"})
            .fields()
            .with_relations({"profile": True, "posts": "title"})
        )
        plan = builder.plan()
        assert plan.projection == Projection(include=("name", "email"))
        assert plan.relations == {"profile": None, "posts": Projection(include=("title",))}

    def test_plan_carries_skip_and_take(self):
        plan = QueryBuilder(RecordingStore(), "user", {"page": "3", "limit": "7"}).paginate().plan()
        assert (plan.skip, plan.take) == (14, 7)


class TestExecute:
    @pytest.mark.asyncio
    async def test_result_meta_and_data(self):
        store = RecordingStore(records=[{"id": 5}, {"id": 4}], total=5)
        result = await (
            QueryBuilder(store, "user", {"status": "active", "age[gte]": "18", "sort": "-createdAt", "page": "1", "limit": "2"})
            .filter().sort().paginate().execute()
        )
        assert result.to_dict() == {
            "meta": {"page": 1, "limit": 2, "total": 5, "totalPage": 3},
            "data": [{"id": 5}, {"id": 4}],
        }

    @pytest.mark.asyncio
    async def test_find_and_count_share_filter(self):
        store = RecordingStore()
        builder = QueryBuilder(store, "user", {"status": "active"}).filter()
        await builder.execute()
        calls = {name: rest for name, *rest in store.calls}
        assert calls["find"][1].where == builder.where
        assert calls["count"][1] == builder.where

    @pytest.mark.asyncio
    async def test_find_and_count_run_concurrently(self):
        store = RecordingStore(delay=0.05)
        await QueryBuilder(store, "user", {}).execute()
        assert store.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_empty_result(self):
        result = await QueryBuilder(RecordingStore(), "user", {}).execute()
        assert result.meta.total == 0
        assert result.meta.total_pages == 0
        assert result.data == []

    @pytest.mark.asyncio
    async def test_zero_limit_never_reaches_store(self):
        store = RecordingStore()
        builder = QueryBuilder(store, "user", {"limit": "0"}).paginate()
        with pytest.raises(InvalidPageSizeError):
            await builder.execute()
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_mixed_projection_never_reaches_store(self):
        store = RecordingStore()
        builder = QueryBuilder(store, "user", {"fields": "name,-password"}).fields()
        with pytest.raises(MixedProjectionError):
            await builder.execute()
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_mixed_relation_projection_is_rejected(self):
        builder = QueryBuilder(RecordingStore(), "user", {}).with_relations({"posts": "title,-body"})
        with pytest.raises(MixedProjectionError):
            await builder.execute()

    @pytest.mark.asyncio
    async def test_store_failure_is_wrapped_and_sibling_cancelled(self):
        boom = RuntimeError("connection reset")
        store = FailingCountStore(boom)
        with pytest.raises(QueryExecutionError) as exc_info:
            await QueryBuilder(store, "user", {}).execute()
        err = exc_info.value
        assert err.cause is boom
        assert err.__cause__ is boom
        assert str(err) == "Query execution failed: connection reset"
        assert store.find_cancelled is True

    @pytest.mark.asyncio
    async def test_error_without_message_uses_type_name(self):
        store = FailingCountStore(KeyError())
        with pytest.raises(QueryExecutionError, match="Query execution failed: KeyError"):
            await QueryBuilder(store, "user", {}).execute()

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self):
        store = RecordingStore(delay=10)
        task = asyncio.ensure_future(QueryBuilder(store, "user", {}).execute())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


def test_build_query_runs_every_stage():
    builder = build_query(
        RecordingStore(),
        "user",
        {"searchTerm": "ann", "status": "active", "sort": "name", "page": "2", "limit": "5", "fields": "-password"},
        searchable_fields=["name"],
        relations={"profile": True},
    )
    assert len(builder.clauses) == 2
    assert builder.order_by == (SortDirective("name"),)
    assert builder.pagination == PaginationSpec(page=2, limit=5)
    assert builder.projection == Projection(exclude=("password",))
    assert dict(builder.relations) == {"profile": None}


def test_from_params_accepts_none():
    builder = QueryBuilder.from_params(RecordingStore(), "user", None)
    assert dict(builder.query) == {}
    assert builder.filter().where is None
