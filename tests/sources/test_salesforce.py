"""Tests for the upstream REST record source, driven by httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest

from omnimap.core.errors import NotAuthenticatedError, UpstreamQueryError, UpstreamTimeoutError
from omnimap.core.models import ComponentKind, TenantContext
from omnimap.execution.retry import ExponentialBackoff
from omnimap.hierarchy.loader import RecordLoader
from omnimap.sources.salesforce import SalesforceRecordSource, soql_quote

INSTANCE = "https://acme.my.example.com"
TENANT = TenantContext("00D1", instance_url=INSTANCE, access_token="tok")


def _row(name: str, key: str) -> dict:
    return {
        "Id": f"id-{name}",
        "Name": name,
        "vlocity_cmt__ProcedureKey__c": key,
        "vlocity_cmt__OmniScriptDefinitions__r": {
            "records": [{"vlocity_cmt__Content__c": '{"children": []}'}]
        },
    }


def _source(handler) -> SalesforceRecordSource:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return SalesforceRecordSource(TENANT, api_version="58.0", client=client)


class TestQuery:
    def test_first_page_and_continuation(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/query"):
                return httpx.Response(
                    200,
                    json={
                        "totalSize": 2,
                        "done": False,
                        "nextRecordsUrl": "/services/data/v58.0/query/01g-2000",
                        "records": [_row("A", "A_1")],
                    },
                )
            return httpx.Response(200, json={"totalSize": 2, "done": True, "records": [_row("B", "B_1")]})

        source = _source(handler)
        first = source.query(ComponentKind.PROCEDURE)
        assert first.done is False
        assert first.records[0].key == "A_1"
        assert first.records[0].definition == '{"children": []}'

        second = source.query_more(first.next_locator)
        assert second.done is True
        assert second.records[0].key == "B_1"

        assert seen[0].headers["Authorization"] == "Bearer tok"
        assert "IsProcedure__c = true" in seen[0].url.params["q"]
        assert str(seen[1].url) == f"{INSTANCE}/services/data/v58.0/query/01g-2000"

    def test_guided_script_query(self):
        queries = []

        def handler(request):
            queries.append(request.url.params["q"])
            return httpx.Response(200, json={"done": True, "records": []})

        _source(handler).query(ComponentKind.GUIDED_SCRIPT)
        assert "IsProcedure__c = false" in queries[0]

    def test_unknown_locator(self):
        source = _source(lambda r: httpx.Response(200, json={}))
        with pytest.raises(UpstreamQueryError, match="Unknown continuation locator"):
            source.query_more("/services/data/v58.0/query/other")


class TestErrors:
    def test_401_is_auth_error(self):
        source = _source(lambda r: httpx.Response(401, json=[{"message": "Session expired"}]))
        with pytest.raises(NotAuthenticatedError):
            source.query(ComponentKind.PROCEDURE)

    def test_500_is_retryable(self):
        source = _source(lambda r: httpx.Response(500, json=[{"message": "boom"}]))
        with pytest.raises(UpstreamQueryError) as exc_info:
            source.query(ComponentKind.DATA_MAPPER)
        err = exc_info.value
        assert err.retryable is True
        assert err.context.http_status == 500
        assert "boom" in err.message

    def test_400_not_retryable(self):
        source = _source(lambda r: httpx.Response(400, json=[{"message": "MALFORMED_QUERY"}]))
        with pytest.raises(UpstreamQueryError) as exc_info:
            source.query(ComponentKind.DATA_MAPPER)
        assert exc_info.value.retryable is False

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamTimeoutError):
            _source(handler).query(ComponentKind.PROCEDURE)

    def test_non_json_body(self):
        source = _source(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamQueryError, match="non-JSON"):
            source.query(ComponentKind.PROCEDURE)

    def test_requires_credentials(self):
        with pytest.raises(NotAuthenticatedError):
            SalesforceRecordSource(TenantContext("00D1"))


class TestFetchOne:
    def test_found(self):
        def handler(request):
            assert "Acct_Get" in request.url.params["q"]
            return httpx.Response(200, json={"done": True, "records": [_row("Account Get", "Acct_Get")]})

        record = _source(handler).fetch_one(ComponentKind.PROCEDURE, "Acct_Get")
        assert record.name == "Account Get"

    def test_not_found(self):
        source = _source(lambda r: httpx.Response(200, json={"done": True, "records": []}))
        assert source.fetch_one(ComponentKind.PROCEDURE, "Nope") is None

    def test_data_mappers_not_fetched(self):
        source = _source(lambda r: pytest.fail("no request expected"))
        assert source.fetch_one(ComponentKind.DATA_MAPPER, "DM1") is None


def test_soql_quote():
    assert soql_quote("O'Brien\\x") == "O\\'Brien\\\\x"


class TestContinuationRetry:
    def test_continuation_page_retried_after_503(self):
        calls = {"more": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/query"):
                return httpx.Response(
                    200,
                    json={
                        "totalSize": 2,
                        "done": False,
                        "nextRecordsUrl": "/services/data/v58.0/query/01g-2000",
                        "records": [_row("A", "A_1")],
                    },
                )
            calls["more"] += 1
            if calls["more"] == 1:
                return httpx.Response(503, json=[{"message": "Service Unavailable"}])
            return httpx.Response(200, json={"totalSize": 2, "done": True, "records": [_row("B", "B_1")]})

        loader = RecordLoader(
            _source(handler),
            batch_delay_seconds=0,
            retry_strategy=ExponentialBackoff(max_retries=2, base_delay=0, jitter=False),
            sleep=lambda _: None,
        )
        batch = loader.load(ComponentKind.PROCEDURE)

        assert batch.status.error is None
        assert [r.key for r in batch.records] == ["A_1", "B_1"]
        assert batch.status.batches == 2
        assert calls["more"] == 2

    def test_locator_consumed_after_success(self):
        def handler(request):
            if request.url.path.endswith("/query"):
                return httpx.Response(
                    200,
                    json={"done": False, "nextRecordsUrl": "/services/data/v58.0/query/01g-2000", "records": []},
                )
            return httpx.Response(200, json={"done": True, "records": []})

        source = _source(handler)
        locator = source.query(ComponentKind.PROCEDURE).next_locator
        source.query_more(locator)
        with pytest.raises(UpstreamQueryError, match="Unknown continuation locator"):
            source.query_more(locator)
