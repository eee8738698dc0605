"""
Record source backed by the upstream REST query API.

Issues SOQL queries over ``httpx`` and follows ``nextRecordsUrl`` for
continuation pages. HTTP and transport failures are translated into the
omnimap error taxonomy so the loader can decide what to retry.

Endpoints used:
    GET {instance}/services/data/v{api}/query?q=<SOQL>
    GET {instance}{nextRecordsUrl}
"""

from __future__ import annotations

from typing import Any

import httpx

from omnimap.core.errors import NotAuthenticatedError, UpstreamQueryError, UpstreamTimeoutError
from omnimap.core.logging import get_logger
from omnimap.core.models import ComponentKind, ComponentRecord, TenantContext
from omnimap.sources.protocol import QueryPage, record_from_dict

logger = get_logger(__name__)

NAMESPACE = "vlocity_cmt"

_SCRIPT_FIELDS = (
    "Id, Name, {ns}__Type__c, {ns}__SubType__c, {ns}__Version__c, "
    "{ns}__ProcedureKey__c, {ns}__IsActive__c"
)

QUERIES: dict[ComponentKind, str] = {
    ComponentKind.DATA_MAPPER: (
        "SELECT Id, Name, {ns}__Description__c, {ns}__Type__c "
        "FROM {ns}__DRBundle__c "
        "ORDER BY Name ASC"
    ),
    ComponentKind.PROCEDURE: (
        "SELECT " + _SCRIPT_FIELDS + ", "
        "(SELECT Id, Name, {ns}__Sequence__c, {ns}__Content__c "
        "FROM {ns}__OmniScriptDefinitions__r ORDER BY {ns}__Sequence__c ASC) "
        "FROM {ns}__OmniScript__c "
        "WHERE {ns}__IsProcedure__c = true AND {ns}__IsActive__c = true "
        "ORDER BY Name ASC"
    ),
    ComponentKind.GUIDED_SCRIPT: (
        "SELECT " + _SCRIPT_FIELDS + ", "
        "(SELECT Id, Name, {ns}__Sequence__c, {ns}__Content__c "
        "FROM {ns}__OmniScriptDefinitions__r ORDER BY {ns}__Sequence__c ASC LIMIT 1) "
        "FROM {ns}__OmniScript__c "
        "WHERE {ns}__IsProcedure__c = false AND {ns}__IsActive__c = true "
        "ORDER BY Name ASC"
    ),
}

_FETCH_ONE = (
    "SELECT " + _SCRIPT_FIELDS + ", "
    "(SELECT Id, Name, {ns}__Sequence__c, {ns}__Content__c "
    "FROM {ns}__OmniScriptDefinitions__r ORDER BY {ns}__Sequence__c ASC LIMIT 1) "
    "FROM {ns}__OmniScript__c "
    "WHERE (Name = '{value}' OR {ns}__ProcedureKey__c = '{value}') "
    "AND {ns}__IsProcedure__c = {is_procedure} AND {ns}__IsActive__c = true "
    "ORDER BY {ns}__Version__c DESC LIMIT 1"
)


def soql_quote(value: str) -> str:
    """Escape a literal for use inside single quotes."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class SalesforceRecordSource:
    """Paginated record source for one tenant.

    Parameters
    ----------
    tenant:
        Tenant context carrying the instance URL and bearer token.
    api_version:
        REST API version (``"58.0"``).
    timeout:
        Per-request timeout in seconds.
    client:
        Optional pre-built ``httpx.Client`` (tests inject a ``MockTransport``).
    """

    name = "salesforce"

    def __init__(
        self,
        tenant: TenantContext,
        *,
        api_version: str = "58.0",
        timeout: float = 60.0,
        namespace: str = NAMESPACE,
        client: httpx.Client | None = None,
    ) -> None:
        tenant.require_credentials()
        self._tenant = tenant
        self._api_version = tenant.api_version or api_version
        self._ns = namespace
        self._client = client or httpx.Client(timeout=timeout)
        self._base_url = str(tenant.instance_url).rstrip("/")
        # locator → kind of the query that produced it
        self._locators: dict[str, ComponentKind] = {}

    # ── RecordSource ─────────────────────────────────────────────────

    def query(self, kind: ComponentKind) -> QueryPage:
        soql = QUERIES[kind].format(ns=self._ns)
        url = f"{self._base_url}/services/data/v{self._api_version}/query"
        payload = self._get(url, params={"q": soql}, kind=kind)
        return self._page(kind, payload)

    def query_more(self, locator: str) -> QueryPage:
        kind = self._locators.get(locator)
        if kind is None:
            raise UpstreamQueryError(
                "Unknown continuation locator", retryable=False
            ).with_context(tenant_id=self._tenant.tenant_id, url=locator)
        payload = self._get(f"{self._base_url}{locator}", kind=kind)
        # a failed fetch leaves the locator in place for the retry
        del self._locators[locator]
        return self._page(kind, payload)

    def fetch_one(self, kind: ComponentKind, name_or_key: str) -> ComponentRecord | None:
        if kind is ComponentKind.DATA_MAPPER:
            return None
        soql = _FETCH_ONE.format(
            ns=self._ns,
            value=soql_quote(name_or_key),
            is_procedure="true" if kind is ComponentKind.PROCEDURE else "false",
        )
        url = f"{self._base_url}/services/data/v{self._api_version}/query"
        payload = self._get(url, params={"q": soql}, kind=kind)
        records = payload.get("records") or []
        if not records:
            return None
        return record_from_dict(kind, records[0])

    def close(self) -> None:
        self._client.close()

    # ── internals ────────────────────────────────────────────────────

    def _page(self, kind: ComponentKind, payload: dict[str, Any]) -> QueryPage:
        records = [record_from_dict(kind, row) for row in payload.get("records") or []]
        done = bool(payload.get("done", True))
        locator = payload.get("nextRecordsUrl") if not done else None
        if locator:
            self._locators[locator] = kind
        return QueryPage(
            records=records,
            done=done or not locator,
            next_locator=locator,
            total_size=int(payload.get("totalSize", len(records))),
        )

    def _get(
        self,
        url: str,
        *,
        kind: ComponentKind,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._tenant.access_token}",
            "Accept": "application/json",
        }
        try:
            response = self._client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(
                f"Query for {kind.value} records timed out", cause=exc
            ).with_context(tenant_id=self._tenant.tenant_id, kind=kind.value, url=url)
        except httpx.HTTPError as exc:
            raise UpstreamQueryError(
                f"Query for {kind.value} records failed: {exc}", cause=exc
            ).with_context(tenant_id=self._tenant.tenant_id, kind=kind.value, url=url)

        if response.status_code == 401:
            raise NotAuthenticatedError(
                "Upstream rejected the access token"
            ).with_context(tenant_id=self._tenant.tenant_id, url=url, http_status=401)

        if response.status_code >= 400:
            raise UpstreamQueryError(
                f"Query for {kind.value} records returned HTTP {response.status_code}: "
                f"{_error_message(response)}",
                retryable=response.status_code >= 500 or response.status_code == 429,
            ).with_context(
                tenant_id=self._tenant.tenant_id,
                kind=kind.value,
                url=url,
                http_status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamQueryError(
                f"Query for {kind.value} records returned a non-JSON body", cause=exc
            ).with_context(tenant_id=self._tenant.tenant_id, kind=kind.value, url=url)

        if not isinstance(payload, dict):
            raise UpstreamQueryError(
                f"Query for {kind.value} records returned an unexpected payload",
                retryable=False,
            ).with_context(tenant_id=self._tenant.tenant_id, kind=kind.value, url=url)
        return payload


def _error_message(response: httpx.Response) -> str:
    """Pull the upstream error message out of a JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, list) and body and isinstance(body[0], dict):
        return str(body[0].get("message", ""))[:200]
    if isinstance(body, dict):
        return str(body.get("message", ""))[:200]
    return ""


__all__ = ["SalesforceRecordSource", "QUERIES", "soql_quote"]
