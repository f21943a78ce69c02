"""Concurrent fan-out of a token pair query across all pool sources."""

from __future__ import annotations

import contextvars
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union

from ..config.settings import DataSourceConfig, get_app_config
from ..datalake.schemas import (
    SOURCE_ORDER,
    FetchFailure,
    FetchOutcome,
    PoolRecord,
    PoolSource,
    TokenPair,
)
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .base import SourceAdapter
from .dlmm_api import DlmmAdapter
from .http import Fetcher
from .meteora_dynamic_api import MeteoraDynamicAdapter
from .orca_api import OrcaAdapter
from .raydium_api import RaydiumAdapter

ADAPTER_TYPES: Dict[PoolSource, Type[SourceAdapter]] = {
    PoolSource.RAYDIUM: RaydiumAdapter,
    PoolSource.ORCA: OrcaAdapter,
    PoolSource.METEORA_DYNAMIC: MeteoraDynamicAdapter,
    PoolSource.METEORA_DLMM: DlmmAdapter,
}


class AggregationError(RuntimeError):
    """Raised when the per-source calls could not be scheduled."""


def build_default_adapters(
    fetcher: Fetcher,
    config: Optional[DataSourceConfig] = None,
    enabled_sources: Optional[Iterable[Union[str, PoolSource]]] = None,
) -> List[SourceAdapter]:
    """Instantiate one adapter per enabled source, in ``SOURCE_ORDER``."""

    cfg = config or get_app_config().data_sources
    enabled = (
        {PoolSource(item) for item in enabled_sources}
        if enabled_sources is not None
        else set(SOURCE_ORDER)
    )
    return [ADAPTER_TYPES[source](fetcher, cfg) for source in SOURCE_ORDER if source in enabled]


class Aggregator:
    """Runs every adapter concurrently and joins their outcomes positionally.

    Each adapter owns exactly one slot of the outcome list. Slots are filled only
    by the joining thread, after the corresponding future settles or its deadline
    passes, so no structure is written concurrently.
    """

    def __init__(self, adapters: Sequence[SourceAdapter]) -> None:
        if not adapters:
            raise ValueError("At least one source adapter is required")
        self._adapters: Tuple[SourceAdapter, ...] = tuple(
            sorted(adapters, key=lambda adapter: SOURCE_ORDER.index(adapter.source))
        )
        self._logger = get_logger(__name__)

    @property
    def sources(self) -> Tuple[PoolSource, ...]:
        return tuple(adapter.source for adapter in self._adapters)

    def aggregate(
        self,
        pair: Union[str, TokenPair],
        per_source_timeout: float,
    ) -> Tuple[List[PoolRecord], List[FetchOutcome]]:
        """Fetch all sources for ``pair`` and return valid records plus per-source outcomes."""

        token_pair = TokenPair.parse(pair)
        if per_source_timeout <= 0:
            raise ValueError("per_source_timeout must be positive")

        started = time.perf_counter()
        slots: List[Optional[FetchOutcome]] = [None] * len(self._adapters)
        executor = ThreadPoolExecutor(
            max_workers=len(self._adapters),
            thread_name_prefix="pool-source",
        )
        try:
            try:
                futures = [
                    executor.submit(
                        contextvars.copy_context().run,
                        adapter.fetch_pools,
                        token_pair,
                        per_source_timeout,
                    )
                    for adapter in self._adapters
                ]
            except RuntimeError as exc:
                raise AggregationError(f"Unable to schedule source fetches: {exc}") from exc
            deadline = time.monotonic() + per_source_timeout
            for index, (adapter, future) in enumerate(zip(self._adapters, futures)):
                slots[index] = self._join(adapter, future, deadline, per_source_timeout)
        finally:
            # Workers still running past their deadline are abandoned, not awaited.
            executor.shutdown(wait=False, cancel_futures=True)

        outcomes = [outcome for outcome in slots if outcome is not None]
        records, invalid = self._merge(outcomes)
        elapsed = time.perf_counter() - started
        METRICS.increment("aggregation.queries")
        METRICS.observe("aggregation.latency_ms", elapsed * 1000.0)
        METRICS.gauge("aggregation.candidates", len(records))
        if invalid:
            METRICS.increment("aggregation.invalid_records", invalid)
        self._logger.info(
            "Aggregated %d candidates for %s in %.2fs (%s)",
            len(records),
            token_pair,
            elapsed,
            ", ".join(f"{outcome.source.value}={outcome.status}" for outcome in outcomes),
        )
        return records, outcomes

    def _join(
        self,
        adapter: SourceAdapter,
        future: Future,
        deadline: float,
        per_source_timeout: float,
    ) -> FetchOutcome:
        remaining = max(deadline - time.monotonic(), 0.0)
        try:
            return future.result(timeout=remaining)
        except FuturesTimeoutError:
            future.cancel()
            METRICS.increment(f"source.{adapter.source.value}.abandoned")
            self._logger.warning(
                "%s did not respond within %.1fs", adapter.source.value, per_source_timeout
            )
            return FetchOutcome.failed(
                adapter.source,
                FetchFailure.TIMEOUT,
                f"No response within {per_source_timeout:.1f}s",
                elapsed_seconds=per_source_timeout,
            )
        except Exception as exc:
            METRICS.increment(f"source.{adapter.source.value}.{FetchFailure.NETWORK_ERROR.value}")
            self._logger.exception("%s adapter failed unexpectedly", adapter.source.value)
            return FetchOutcome.failed(adapter.source, FetchFailure.NETWORK_ERROR, str(exc))

    def _merge(self, outcomes: Iterable[FetchOutcome]) -> Tuple[List[PoolRecord], int]:
        records: List[PoolRecord] = []
        invalid = 0
        for outcome in outcomes:
            for record in outcome.records:
                if record.is_valid():
                    records.append(record)
                else:
                    invalid += 1
                    self._logger.debug(
                        "Dropping invalid %s record %s", record.source.value, record.raw_id
                    )
        return records, invalid


__all__ = ["ADAPTER_TYPES", "AggregationError", "Aggregator", "build_default_adapters"]
