"""Tests for the in-memory and JSON-file record sources."""

from __future__ import annotations

import json

import pytest

from omnimap.core.errors import ConfigError, UpstreamQueryError
from omnimap.core.models import ComponentKind
from omnimap.sources.file import FileRecordSource, MemoryRecordSource
from tests._support.builders import data_mapper, procedure, records_by_kind


class TestMemoryRecordSource:
    def test_pages(self):
        records = [data_mapper(f"DM{i}") for i in range(5)]
        source = MemoryRecordSource(records_by_kind(*records), page_size=2)

        page = source.query(ComponentKind.DATA_MAPPER)
        assert [r.name for r in page.records] == ["DM0", "DM1"]
        assert page.done is False
        assert page.total_size == 5

        page = source.query_more(page.next_locator)
        page = source.query_more(page.next_locator)
        assert [r.name for r in page.records] == ["DM4"]
        assert page.done is True
        assert page.next_locator is None

    def test_empty_kind(self):
        page = MemoryRecordSource().query(ComponentKind.GUIDED_SCRIPT)
        assert page.records == []
        assert page.done is True

    def test_bad_locator(self):
        with pytest.raises(UpstreamQueryError) as exc_info:
            MemoryRecordSource().query_more("garbage")
        assert exc_info.value.retryable is False

    def test_fetch_one_latest_version(self):
        source = MemoryRecordSource(
            records_by_kind(
                procedure("Acct", "Get", version="1"),
                procedure("Acct", "Get", version="3"),
                procedure("Acct", "Get", version="2"),
            )
        )
        record = source.fetch_one(ComponentKind.PROCEDURE, "acct_get")
        assert record.version == "3"

    def test_fetch_one_missing(self):
        assert MemoryRecordSource().fetch_one(ComponentKind.PROCEDURE, "Nope") is None

    def test_page_size_validated(self):
        with pytest.raises(ValueError):
            MemoryRecordSource(page_size=0)


class TestFileRecordSource:
    def test_reads_export(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text(
            json.dumps(
                {
                    "dataMappers": [{"name": "DM1"}],
                    "integrationProcedures": [
                        {"name": "Acct_Get", "type": "Acct", "subType": "Get", "definition": {"children": []}}
                    ],
                    "omniscripts": [{"name": "Acct/Wizard", "type": "Acct", "subType": "Wizard"}],
                }
            )
        )
        source = FileRecordSource(path)
        assert [r.name for r in source.query(ComponentKind.DATA_MAPPER).records] == ["DM1"]
        assert source.query(ComponentKind.PROCEDURE).records[0].key == "Acct_Get"
        assert source.query(ComponentKind.GUIDED_SCRIPT).records[0].key == "Acct_Wizard"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            FileRecordSource(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="not valid JSON"):
            FileRecordSource(path)

    def test_non_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]")
        with pytest.raises(ConfigError):
            FileRecordSource(path)
