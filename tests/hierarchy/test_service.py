"""Tests for ComponentService: loading, reads and cache administration."""

from __future__ import annotations

import threading
import time

import pytest

from omnimap.core.cache import InMemoryCache
from omnimap.core.errors import NotAuthenticatedError, NotFoundError, UpstreamQueryError
from omnimap.core.models import ComponentKind, ReferenceStatus
from omnimap.hierarchy.cache_manager import CacheManager, ExternalCachePort
from omnimap.hierarchy.service import ComponentService, LoadSummary, describe_dataset
from omnimap.sources.file import MemoryRecordSource
from tests._support.builders import TENANT_ID, plain_step, procedure, records_by_kind, ref_step

IP = ComponentKind.PROCEDURE


class TestLoadAll:
    def test_full_pipeline(self, make_service, tenant, sample_records):
        service = make_service(sample_records)
        dataset = service.load_all(tenant)

        assert dataset.counts() == {
            "dataMappers": 1, "integrationProcedures": 2, "omniscripts": 1, "total": 4,
        }
        assert dataset.tenant_name == "Acme"
        assert dataset.hierarchy == {"Acct_Get": ["Acct_Details"], "Acct_Wizard": ["Acct_Get"]}
        details = dataset.lookup(IP, "Acct_Details")
        assert sorted(e.path for e in details.referenced_by) == [
            "Acct_Get-Acct_Details",
            "Acct_Wizard-Acct_Get-Acct_Details",
        ]
        assert dataset.report.status == "complete"
        assert dataset.report.paths_stamped == 3
        assert dataset.timing is not None

    def test_repeat_load_gives_equal_reference_paths(self, make_service, tenant, sample_records):
        records = sample_records + [
            procedure("Loop", "A", ref_step("ToB", "Loop_B")),
            procedure("Loop", "B", ref_step("ToA", "Loop_A")),
        ]
        service = make_service(records)

        def paths(dataset):
            return {
                (c.kind, c.key): {e.path for e in c.referenced_by} for c in dataset.components()
            }

        first = service.load_all(tenant)
        second = service.force_reload(tenant)
        assert second is not first
        assert paths(second) == paths(first)
        assert any(paths(first).values())
        assert second.counts() == first.counts()
        assert second.hierarchy == first.hierarchy

    def test_result_is_cached(self, make_service, tenant, sample_records):
        service = make_service(sample_records)
        dataset = service.load_all(tenant)
        assert service.cache.get_memory(TENANT_ID) is dataset

    def test_reload_replaces_wholesale(self, make_service, tenant, sample_records):
        service = make_service(sample_records)
        first = service.load_all(tenant)
        second = service.load_all(tenant)
        assert second is not first
        assert service.cache.get_memory(TENANT_ID) is second
        assert second.lookup(IP, "Acct_Get") is not first.lookup(IP, "Acct_Get")

    def test_paginated_source(self, make_service, tenant):
        records = [procedure("P", str(i)) for i in range(7)]
        service = make_service(records, page_size=2)
        assert service.load_all(tenant).counts()["integrationProcedures"] == 7

    def test_unknown_reference_tolerated(self, make_service, tenant):
        service = make_service([procedure("A", "B", ref_step("CallMissing", "Gone_1"))])
        dataset = service.load_all(tenant)
        step = dataset.lookup(IP, "A_B").steps[0]
        assert step.reference_status is ReferenceStatus.UNRESOLVED
        assert dataset.report.status == "complete"
        assert LoadSummary.from_dataset(dataset).warnings

    def test_parse_error_makes_partial(self, make_service, tenant):
        service = make_service([procedure("A", "B", raw_definition="{bad"), procedure("C", "D")])
        dataset = service.load_all(tenant)
        assert dataset.report.status == "partial"
        assert dataset.counts()["integrationProcedures"] == 2

    def test_all_kinds_failed(self, settings, tenant):
        class _Down(MemoryRecordSource):
            def query(self, kind):
                raise UpstreamQueryError("HTTP 503", retryable=False)

        service = ComponentService(settings, source_factory=lambda t: _Down(), sleep=lambda s: None)
        with pytest.raises(UpstreamQueryError, match="Failed to load any component records"):
            service.load_all(tenant)
        assert service.cache.get_memory(TENANT_ID) is None

    def test_auth_failure_propagates(self, settings, tenant):
        service = ComponentService(settings, sleep=lambda s: None)
        with pytest.raises(NotAuthenticatedError):
            service.load_all(tenant)

    def test_force_reload_clears_first(self, make_service, tenant, sample_records):
        service = make_service(sample_records)
        first = service.load_all(tenant)
        assert service.force_reload(tenant) is not first


class TestConcurrentLoads:
    def test_waiting_caller_reuses_in_flight_load(self, settings, tenant, sample_records):
        started = threading.Event()
        release = threading.Event()
        queries = []

        class _Slow(MemoryRecordSource):
            def query(self, kind):
                queries.append(kind)
                if len(queries) == 1:
                    started.set()
                    release.wait(timeout=5)
                return super().query(kind)

        source = _Slow(records_by_kind(*sample_records))
        service = ComponentService(settings, source_factory=lambda t: source, sleep=lambda s: None)
        results = {}

        def run(name):
            results[name] = service.load_all(tenant)

        first = threading.Thread(target=run, args=("first",))
        first.start()
        assert started.wait(timeout=5)
        second = threading.Thread(target=run, args=("second",))
        second.start()
        time.sleep(0.1)
        assert service.cache_status()["loadsInFlight"] == [TENANT_ID]
        release.set()
        first.join()
        second.join()

        assert results["first"] is results["second"]
        assert len(queries) == 3


class TestReads:
    @pytest.fixture
    def loaded(self, make_service, tenant, sample_records):
        service = make_service(sample_records)
        service.load_all(tenant)
        return service

    def test_get_dataset_loads_on_miss(self, make_service, tenant, sample_records):
        service = make_service(sample_records)
        dataset = service.get_dataset(tenant)
        assert dataset.total_components == 4
        assert service.get_dataset(tenant) is dataset

    def test_cached_requires_load(self, make_service):
        with pytest.raises(NotFoundError, match="run a load first"):
            make_service([]).cached(TENANT_ID)

    def test_get_component(self, loaded):
        detail = loaded.get_component(TENANT_ID, ComponentKind.GUIDED_SCRIPT, "Acct/Wizard")
        assert detail.component.key == "Acct_Wizard"
        assert detail.expanded_children == ["Acct_Get", "Acct_Details"]
        assert detail.to_dict()["expandedChildrenCount"] == 2

    def test_get_component_by_procedure_key(self, loaded):
        detail = loaded.get_component(TENANT_ID, IP, "acct_get")
        assert detail.component.name == "Acct_Get"

    def test_get_component_missing(self, loaded):
        with pytest.raises(NotFoundError):
            loaded.get_component(TENANT_ID, IP, "Nope")

    def test_search_substring(self, loaded):
        keys = [s.key for s in loaded.search(TENANT_ID, term="acct")]
        assert keys == ["Acct_Get", "Acct_Details", "Acct_Wizard"]

    def test_search_by_kind(self, loaded):
        results = loaded.search(TENANT_ID, ComponentKind.DATA_MAPPER)
        assert [s.key for s in results] == ["DM1"]

    def test_search_limit(self, loaded):
        assert len(loaded.search(TENANT_ID, limit=2)) == 2

    def test_summary(self, loaded):
        summary = loaded.get_summary(TENANT_ID).to_dict()
        assert summary["hierarchyEdges"] == 2
        assert summary["status"] == "complete"

    def test_describe_dataset(self, loaded):
        described = describe_dataset(loaded.cached(TENANT_ID))
        rows = {r["key"]: r for r in described["components"]}
        assert rows["Acct_Get"]["childCount"] == 1
        assert rows["Acct_Details"]["referencedByCount"] == 2
        assert described["totalHierarchicalReferences"] == 3


class TestChildHierarchy:
    def test_from_cache(self, make_service, tenant, sample_records):
        service = make_service(sample_records)
        service.load_all(tenant)
        hierarchy = service.get_child_hierarchy(TENANT_ID, "Acct_Get")
        assert hierarchy.source == "cache"
        assert hierarchy.steps[0].referenced_procedure_key == "Acct_Details"

    def test_fetched_on_demand(self, make_service, tenant, credentialed_tenant, sample_records):
        extra = procedure("New", "Proc", ref_step("CallDetails", "Acct_Details"), ref_step("CallGone", "Gone_1"))
        service = make_service(sample_records)
        service.load_all(tenant)
        service.source.add(extra)

        hierarchy = service.get_child_hierarchy(TENANT_ID, "New_Proc", credentialed_tenant)
        assert hierarchy.source == "upstream"
        statuses = [s.reference_status for s in hierarchy.steps]
        assert statuses == [ReferenceStatus.RESOLVED, ReferenceStatus.UNRESOLVED]
        assert ("fetch_one", "New_Proc") in service.source.calls

    def test_without_credentials(self, make_service, tenant):
        service = make_service([])
        with pytest.raises(NotFoundError):
            service.get_child_hierarchy(TENANT_ID, "New_Proc", tenant)

    def test_upstream_miss(self, make_service, credentialed_tenant):
        service = make_service([])
        with pytest.raises(NotFoundError, match="not found"):
            service.get_child_hierarchy(TENANT_ID, "New_Proc", credentialed_tenant)


class TestCacheAdmin:
    def test_clear_then_reload(self, make_service, tenant, sample_records):
        service = make_service(sample_records)
        service.load_all(tenant)
        assert service.clear_cache(TENANT_ID)["memoryCleared"] == 1
        with pytest.raises(NotFoundError):
            service.cached(TENANT_ID)

    def test_external_tier_serves_cold_service(self, settings, tenant, sample_records):
        port = ExternalCachePort(InMemoryCache(default_ttl_seconds=None))
        source = MemoryRecordSource(records_by_kind(*sample_records))
        warm = ComponentService(settings, cache=CacheManager(port), source_factory=lambda t: source, sleep=lambda s: None)
        warm_dataset = warm.load_all(tenant)

        cold = ComponentService(settings, cache=CacheManager(port), source_factory=lambda t: pytest.fail("no load"))
        dataset = cold.get_dataset(tenant)
        assert dataset.cache_source == "redis"
        assert dataset.counts() == warm_dataset.counts()
        assert dataset.hierarchy == warm_dataset.hierarchy
        assert {(c.kind, c.key) for c in dataset.components()} == {
            (c.kind, c.key) for c in warm_dataset.components()
        }
        assert cold.get_component(TENANT_ID, IP, "Acct_Get").expanded_children == ["Acct_Details"]

    def test_set_external_cache(self, make_service):
        status = make_service([]).set_external_cache(False)
        assert status["external"]["enabled"] is False
        assert status["loadsInFlight"] == []


class TestFromSettings:
    def test_memory_backend_is_external_tier(self, settings, tenant, sample_records):
        source = MemoryRecordSource(records_by_kind(*sample_records))
        service = ComponentService.from_settings(
            settings.model_copy(update={"cache_backend": "memory", "cache_ttl_seconds": 60}),
            source_factory=lambda t: source,
        )
        assert service.cache.external_active is True

        service.load_all(tenant)
        cached = service.cache.get_external(TENANT_ID).unwrap()
        assert cached.counts()["total"] == 4
        status = service.cache_status()
        assert status["external"]["reachable"] is True
        assert status["external"]["ttlSeconds"] == 60

    def test_no_external_tier_without_redis_url(self, settings):
        service = ComponentService.from_settings(settings)
        assert service.cache.external_configured is False
