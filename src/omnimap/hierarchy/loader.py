"""
Record Loader: paginated retrieval of one record kind.

Follows continuation locators until the source reports ``done``, with a
fixed batch ceiling and a short pause between batches to respect
upstream rate limits. Each page request is retried with exponential
backoff. Once retries are exhausted, pagination of that kind stops: the
records from pages already received are kept, the error is reported on
the kind's status, and the other kinds still load.

Example:
    >>> loader = RecordLoader(source, max_batches=100, batch_delay_seconds=0.1)
    >>> batch = loader.load(ComponentKind.PROCEDURE)
    >>> batch.status.records, batch.status.truncated
    (412, False)
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from omnimap.core.errors import NotAuthenticatedError, OmnimapError, UpstreamQueryError
from omnimap.core.logging import get_logger
from omnimap.core.models import LOAD_ORDER, ComponentKind, ComponentRecord, KindLoadStatus
from omnimap.execution.retry import ExponentialBackoff, RetryContext, RetryStrategy
from omnimap.sources.protocol import QueryPage, RecordSource

logger = get_logger(__name__)


@dataclass
class KindBatch:
    """Records of one kind plus how the load went."""

    kind: ComponentKind
    records: list[ComponentRecord] = field(default_factory=list)
    status: KindLoadStatus | None = None

    def __post_init__(self) -> None:
        if self.status is None:
            self.status = KindLoadStatus(kind=self.kind)


class RecordLoader:
    """Load flat record lists from a :class:`RecordSource`.

    Parameters
    ----------
    source:
        Where records come from.
    max_batches:
        Safety ceiling on pages fetched per kind (first page included).
    batch_delay_seconds:
        Pause between consecutive page requests.
    retry_strategy:
        Retry policy for a single page request.
    sleep:
        Injected for tests.
    """

    def __init__(
        self,
        source: RecordSource,
        *,
        max_batches: int = 100,
        batch_delay_seconds: float = 0.1,
        retry_strategy: RetryStrategy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._source = source
        self._max_batches = max_batches
        self._delay = batch_delay_seconds
        self._strategy = retry_strategy or ExponentialBackoff()
        self._sleep = sleep

    def load(self, kind: ComponentKind) -> KindBatch:
        """Fetch every page of ``kind``.

        Upstream failures are recorded on the returned status. Only an
        authentication failure propagates, since no other kind can
        succeed without credentials either.
        """
        batch = KindBatch(kind=kind)
        status = batch.status
        started = time.perf_counter()

        try:
            page = self._fetch(self._source.query, kind)
            status.batches = 1
            batch.records.extend(page.records)
            logger.debug(
                "batch_fetched", kind=kind.value, batch=1,
                records=len(page.records), total=page.total_size,
            )

            while not page.done and page.next_locator:
                if status.batches >= self._max_batches:
                    status.truncated = True
                    logger.warning(
                        "batch_ceiling_reached",
                        kind=kind.value,
                        batches=status.batches,
                        records=len(batch.records),
                        total=page.total_size,
                    )
                    break
                if self._delay:
                    self._sleep(self._delay)
                page = self._fetch(self._source.query_more, page.next_locator)
                status.batches += 1
                batch.records.extend(page.records)
                logger.debug(
                    "batch_fetched", kind=kind.value, batch=status.batches,
                    records=len(page.records), total=page.total_size,
                )
        except NotAuthenticatedError:
            raise
        except OmnimapError as exc:
            # records from pages that did arrive are kept
            status.error = exc.message
            status.records = len(batch.records)
            logger.error(
                "kind_load_failed",
                kind=kind.value,
                batches=status.batches,
                records_kept=status.records,
                error=exc.to_dict(),
            )
            return batch

        status.records = len(batch.records)
        logger.info(
            "kind_loaded",
            kind=kind.value,
            records=status.records,
            batches=status.batches,
            truncated=status.truncated,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return batch

    def load_all(self, kinds: Iterable[ComponentKind] = LOAD_ORDER) -> dict[ComponentKind, KindBatch]:
        """Load each kind in order. One kind failing does not stop the next."""
        return {kind: self.load(kind) for kind in kinds}

    def _fetch(self, func: Callable[..., QueryPage], arg: object) -> QueryPage:
        def _log_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning("page_fetch_retry", attempt=attempt, delay=round(delay, 3), error=str(error))

        ctx = RetryContext(self._strategy, on_retry=_log_retry, sleep=self._sleep)
        try:
            return ctx.run(func, arg)
        except OmnimapError:
            raise
        except Exception as exc:
            raise UpstreamQueryError(f"Record source failed: {exc}", retryable=False, cause=exc) from exc


__all__ = ["RecordLoader", "KindBatch"]
