"""Tests for the Record Loader's pagination, retry and failure isolation."""

from __future__ import annotations

import pytest

from omnimap.core.errors import NotAuthenticatedError, UpstreamQueryError
from omnimap.core.models import ComponentKind
from omnimap.execution.retry import ExponentialBackoff
from omnimap.hierarchy.loader import RecordLoader
from omnimap.sources.file import MemoryRecordSource
from tests._support.builders import data_mapper, procedure, records_by_kind


def _loader(source, **kwargs) -> RecordLoader:
    kwargs.setdefault("retry_strategy", ExponentialBackoff(max_retries=1, jitter=False))
    kwargs.setdefault("sleep", lambda s: None)
    return RecordLoader(source, **kwargs)


class TestPagination:
    def test_follows_locators(self):
        records = [data_mapper(f"DM{i}") for i in range(5)]
        source = MemoryRecordSource(records_by_kind(*records), page_size=2)

        batch = _loader(source).load(ComponentKind.DATA_MAPPER)
        assert len(batch.records) == 5
        assert batch.status.batches == 3
        assert batch.status.truncated is False
        assert batch.status.ok

    def test_batch_ceiling(self):
        records = [data_mapper(f"DM{i}") for i in range(10)]
        source = MemoryRecordSource(records_by_kind(*records), page_size=2)

        batch = _loader(source, max_batches=3).load(ComponentKind.DATA_MAPPER)
        assert len(batch.records) == 6
        assert batch.status.batches == 3
        assert batch.status.truncated is True

    def test_delay_between_batches(self):
        sleeps = []
        records = [data_mapper(f"DM{i}") for i in range(3)]
        source = MemoryRecordSource(records_by_kind(*records), page_size=1)

        _loader(source, batch_delay_seconds=0.1, sleep=sleeps.append).load(ComponentKind.DATA_MAPPER)
        assert sleeps == [0.1, 0.1]

    def test_load_all_in_order(self):
        source = MemoryRecordSource(records_by_kind(data_mapper("DM1"), procedure("A", "B")))
        batches = _loader(source).load_all()
        assert list(batches) == [ComponentKind.DATA_MAPPER, ComponentKind.PROCEDURE, ComponentKind.GUIDED_SCRIPT]
        assert [c for c in source.calls if c[0] == "query"] == [
            ("query", "data-mapper"),
            ("query", "integration-procedure"),
            ("query", "omniscript"),
        ]


class _FlakySource(MemoryRecordSource):
    """Fails ``query_more`` a set number of times."""

    def __init__(self, *args, failures: int, error: Exception, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures
        self.error = error

    def query_more(self, locator):
        if self.failures:
            self.failures -= 1
            raise self.error
        return super().query_more(locator)


class TestFailures:
    def test_retry_recovers(self):
        records = [data_mapper(f"DM{i}") for i in range(4)]
        source = _FlakySource(
            records_by_kind(*records), page_size=2, failures=1, error=UpstreamQueryError("HTTP 503")
        )
        batch = _loader(source).load(ComponentKind.DATA_MAPPER)
        assert len(batch.records) == 4
        assert batch.status.ok

    def test_exhausted_keeps_received_pages(self):
        records = [data_mapper(f"DM{i}") for i in range(4)]
        source = _FlakySource(
            records_by_kind(*records), page_size=2, failures=10, error=UpstreamQueryError("HTTP 503")
        )
        batch = _loader(source).load(ComponentKind.DATA_MAPPER)
        assert len(batch.records) == 2
        assert batch.status.records == 2
        assert "HTTP 503" in batch.status.error

    def test_failed_kind_does_not_stop_others(self):
        class _DownForMappers(MemoryRecordSource):
            def query(self, kind):
                if kind is ComponentKind.DATA_MAPPER:
                    raise UpstreamQueryError("HTTP 500", retryable=False)
                return super().query(kind)

        source = _DownForMappers(records_by_kind(data_mapper("DM1"), procedure("A", "B")))
        batches = _loader(source).load_all()
        assert batches[ComponentKind.DATA_MAPPER].status.error
        assert len(batches[ComponentKind.PROCEDURE].records) == 1

    def test_auth_failure_propagates(self):
        class _Denied(MemoryRecordSource):
            def query(self, kind):
                raise NotAuthenticatedError("Session expired")

        with pytest.raises(NotAuthenticatedError):
            _loader(_Denied()).load_all()

    def test_unexpected_exception_is_wrapped(self):
        class _Broken(MemoryRecordSource):
            def query(self, kind):
                raise KeyError("records")

        batch = _loader(_Broken()).load(ComponentKind.PROCEDURE)
        assert "Record source failed" in batch.status.error
