"""Tests for write-triggered invalidation: create / update / delete / engagement."""

import pytest

from catalog.pipelines.listing import ListingQuery
from catalog.services.cache_keys import compute_signature
from catalog.services.invalidator import InvalidationKind


def _results_key(services, params):
    query = services.reader.parse_query(params)
    return services.reader.keys.results(compute_signature(query))


def _ids(response):
    return [item["id"] for item in response.items]


class TestScenarios:
    @pytest.mark.asyncio
    async def test_category_filter_scenario(self, services):
        response = await services.reader.list_items({"category": "Writing"})
        assert _ids(response) == ["a1", "a3"]

    @pytest.mark.asyncio
    async def test_create_then_cached_read(self, services):
        await services.reader.list_items({"category": "Tools"})
        created = await services.writer.create({"id": "t1", "name": "Toolbox", "category": "Tools"})
        assert created["categories"] == ["Tools"]

        cold = await services.reader.list_items({"category": "Tools"})
        assert cold.fromCache is False
        assert _ids(cold) == ["t1"]

        warm = await services.reader.list_items({"category": "Tools"})
        assert warm.fromCache is True
        assert warm.model_dump(exclude={"fromCache", "responseTimeMs"}) == \
            cold.model_dump(exclude={"fromCache", "responseTimeMs"})

    @pytest.mark.asyncio
    async def test_update_moves_item_between_categories(self, services, cache):
        await services.writer.create({"id": "t1", "name": "Toolbox", "category": "Tools"})
        await services.reader.list_items({"category": "Tools"})
        await services.reader.list_items({"category": "Business"})
        tools_key = _results_key(services, {"category": "Tools"})
        assert await cache.get(tools_key) is not None

        await services.writer.update("t1", {"category": "Business"})

        # Purged by the write, not left to expire
        assert await cache.get(tools_key) is None
        assert await cache.get(_results_key(services, {"category": "Business"})) is None
        assert _ids(await services.reader.list_items({"category": "Tools"})) == []
        assert "t1" in _ids(await services.reader.list_items({"category": "Business"}))

    @pytest.mark.asyncio
    async def test_update_purges_mismatched_legacy_category(self, services, store):
        await store.create({"title": "Legacy", "category": "Tools", "categories": ["AI"]}, "x1")
        assert _ids(await services.reader.list_items({"category": "Tools"})) == ["x1"]
        assert (await services.reader.category_items("Tools")).count == 1

        await services.writer.update("x1", {"categories": ["Business"]})

        listed = await services.reader.list_items({"category": "Tools"})
        assert listed.fromCache is False
        assert _ids(listed) == []
        category = await services.reader.category_items("Tools")
        assert category.fromCache is False
        assert category.count == 0

    @pytest.mark.asyncio
    async def test_delete_updates_total_and_category(self, services, cache):
        await services.writer.create({"id": "t1", "name": "Toolbox", "category": "Tools"})
        before = await services.reader.total_count()
        await services.reader.category_items("Tools")
        assert (await services.reader.total_count()).fromCache is True

        await services.writer.delete("t1")

        after = await services.reader.total_count()
        assert after.fromCache is False
        assert after.totalCount == before.totalCount - 1
        assert await cache.get(services.reader.keys.category("Tools")) is None

    @pytest.mark.asyncio
    async def test_offset_past_end(self, services):
        for i in range(12):
            await services.writer.create({"name": f"Tool {i}", "category": "Tools"})
        response = await services.reader.list_items({"category": "Tools", "limit": "10", "offset": "25"})
        assert response.items == []
        assert response.hasMore is False
        assert response.totalPages == 2
        assert response.totalCount == 12


class TestInvalidationScope:
    @pytest.mark.asyncio
    async def test_unrelated_category_results_survive(self, services, cache):
        await services.reader.list_items({"category": "Business"})
        await services.reader.list_items({})
        await services.writer.create({"name": "Pen", "category": "Writing"})

        assert await cache.get(_results_key(services, {"category": "Business"})) is not None
        assert await cache.get(_results_key(services, {})) is None

    @pytest.mark.asyncio
    async def test_engagement_purges_item_and_results(self, services, cache):
        await services.reader.get_item("a1")
        await services.reader.list_items({})
        report = await services.invalidator.on_engagement("a1", ["Writing"])

        assert report.kind is InvalidationKind.ENGAGEMENT
        assert report.ok
        assert await cache.get(services.reader.keys.item("a1")) is None
        assert await cache.get(_results_key(services, {})) is None

    @pytest.mark.asyncio
    async def test_counter_purges_only_the_item(self, services, cache):
        await services.reader.get_item("a1")
        await services.reader.list_items({})
        await services.reader.category_items("Writing")

        report = await services.invalidator.on_counter("a1")

        assert report.kind is InvalidationKind.COUNTER
        assert report.snapshot_version is None
        assert report.keys_purged == 1
        assert await cache.get(_results_key(services, {})) is not None
        assert await cache.get(services.reader.keys.category("Writing")) is not None

    @pytest.mark.asyncio
    async def test_snapshot_is_refreshed(self, services, store):
        first = await services.snapshots.ensure_fresh()
        await store.update("a1", {"title": "Renamed"})
        report = await services.invalidator.on_update("a1", ["Writing"], ["Writing"])
        assert report.snapshot_version == first.version + 1
        assert services.snapshots.current.items[0].title == "Renamed"


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_update_twice_equals_once(self, services, cache):
        keys = services.reader.keys
        await services.reader.list_items({})
        await services.reader.list_items({"category": "Writing"})
        await services.reader.list_items({"category": "Business"})
        await services.reader.get_item("a1")
        await services.reader.total_count()
        watched = [
            _results_key(services, {}),
            _results_key(services, {"category": "Writing"}),
            _results_key(services, {"category": "Business"}),
            keys.item("a1"),
            keys.total_count(),
        ]

        await services.invalidator.on_update("a1", ["Writing"], ["Writing"])
        once = [await cache.get(k) is not None for k in watched]
        await services.invalidator.on_update("a1", ["Writing"], ["Writing"])
        twice = [await cache.get(k) is not None for k in watched]

        assert once == twice == [False, False, True, False, True]


class TestBestEffort:
    @pytest.mark.asyncio
    async def test_purge_failure_does_not_fail_write(self, services, cache, monkeypatch):
        async def broken(*args, **kwargs):
            raise ConnectionError("cache down")

        monkeypatch.setattr(cache, "invalidate_tags", broken)
        created = await services.writer.create({"id": "t9", "name": "Still saved", "category": "Tools"})
        assert created["id"] == "t9"
        assert await services.store.get_by_id("t9") is not None

    @pytest.mark.asyncio
    async def test_failures_are_reported(self, services, cache, monkeypatch):
        async def broken(*args, **kwargs):
            raise ConnectionError("cache down")

        monkeypatch.setattr(cache, "delete", broken)
        report = await services.invalidator.on_delete("a1", ["Writing"])
        assert not report.ok
        assert {f.split(":")[0] for f in report.failures} >= {"item", "categories", "total"}

    @pytest.mark.asyncio
    async def test_snapshot_failure_still_purges(self, services, cache, monkeypatch):
        await services.reader.list_items({})

        async def failing_refresh():
            raise ConnectionError("store down")

        monkeypatch.setattr(services.snapshots, "force_refresh", failing_refresh)
        report = await services.invalidator.on_create("x", ["Tools"])
        assert report.failures[0].startswith("snapshot")
        assert await cache.get(_results_key(services, {})) is None

    def test_signature_helper_matches_reader(self, services):
        assert _results_key(services, {"limit": "20"}) == services.reader.keys.results(
            compute_signature(ListingQuery(limit=20))
        )
