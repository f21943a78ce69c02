"""Common behaviour of the pool listing adapters."""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Annotated, Any, ClassVar, List, Mapping, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, BeforeValidator, ValidationError

from ..config.settings import DataSourceConfig, get_app_config
from ..datalake.schemas import FetchFailure, FetchOutcome, PoolRecord, PoolSource, TokenPair
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .http import Fetcher, FetchNetworkError, FetchTimeoutError


class PayloadError(ValueError):
    """Raised when a provider response does not have the expected overall shape."""


def _reject_bool(value: Any) -> Any:
    # JSON true/false would otherwise coerce to 1/0 in lax mode.
    if isinstance(value, bool):
        raise ValueError("expected a number, got a boolean")
    return value


Amount = Annotated[float, BeforeValidator(_reject_bool)]
WholeAmount = Annotated[int, BeforeValidator(_reject_bool)]


class SourceAdapter(ABC):
    """Fetches one provider's pools for a token pair and maps them to :class:`PoolRecord`.

    Subclasses declare the provider's entry schema as a pydantic model and implement
    three hooks: fetching the raw JSON documents, extracting the entry list from a
    document and mapping a validated entry to a record. :meth:`fetch_pools` never
    raises for provider problems; it reports them as a failed :class:`FetchOutcome`.
    """

    source: ClassVar[PoolSource]
    entry_model: ClassVar[Type[BaseModel]]

    def __init__(self, fetcher: Fetcher, config: Optional[DataSourceConfig] = None) -> None:
        self._fetcher = fetcher
        self._config = config or get_app_config().data_sources
        self._logger = get_logger(type(self).__module__)

    @property
    def tag(self) -> str:
        return self.source.value

    def fetch_pools(self, pair: TokenPair, timeout: float) -> FetchOutcome:
        start = time.perf_counter()
        try:
            payloads = self._fetch_payloads(pair, timeout)
            records, skipped = self._map_payloads(payloads, pair)
        except FetchTimeoutError as exc:
            return self._failed(FetchFailure.TIMEOUT, exc, start)
        except FetchNetworkError as exc:
            return self._failed(FetchFailure.NETWORK_ERROR, exc, start)
        except (PayloadError, ValidationError) as exc:
            return self._failed(FetchFailure.PARSE_ERROR, exc, start)
        elapsed = time.perf_counter() - start
        METRICS.increment(f"source.{self.tag}.success")
        METRICS.observe(f"source.{self.tag}.latency_ms", elapsed * 1000.0)
        if skipped:
            METRICS.increment(f"source.{self.tag}.skipped_entries", skipped)
        self._logger.info(
            "%s returned %d pools for %s (%d skipped) in %.2fs",
            self.tag,
            len(records),
            pair,
            skipped,
            elapsed,
        )
        return FetchOutcome.success(
            self.source,
            records,
            elapsed_seconds=elapsed,
            skipped_entries=skipped,
        )

    @abstractmethod
    def _fetch_payloads(self, pair: TokenPair, timeout: float) -> List[Any]:
        """Return the decoded JSON documents that make up one logical listing call."""

    @abstractmethod
    def _extract_entries(self, payload: Any) -> Sequence[Any]:
        """Return the raw pool entries of one document or raise :class:`PayloadError`."""

    @abstractmethod
    def _to_record(self, entry: Any, pair: TokenPair) -> Optional[PoolRecord]:
        """Map a validated entry, returning ``None`` when it trades a different pair."""

    def _map_payloads(self, payloads: List[Any], pair: TokenPair) -> Tuple[List[PoolRecord], int]:
        records: List[PoolRecord] = []
        skipped = 0
        for payload in payloads:
            for raw in self._extract_entries(payload):
                try:
                    entry = self.entry_model.model_validate(raw)
                    record = self._to_record(entry, pair)
                except (ValueError, TypeError, KeyError, AttributeError) as exc:
                    skipped += 1
                    self._logger.debug("Skipping malformed %s entry: %s", self.tag, exc)
                    continue
                if record is None:
                    continue
                records.append(record)
        return records, skipped

    def _get_json(
        self,
        url: str,
        *,
        deadline: float,
        params: Optional[Mapping[str, object]] = None,
    ) -> Any:
        body = self._fetcher.fetch(url, timeout=self._remaining(deadline), params=params)
        try:
            return json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PayloadError(f"{self.tag} response is not valid JSON: {exc}") from exc

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchTimeoutError(f"{self.tag} request budget exhausted")
        return remaining

    @staticmethod
    def _deadline(timeout: float) -> float:
        return time.monotonic() + timeout

    def _url(self, base_url: object, endpoint: str) -> str:
        return f"{str(base_url).rstrip('/')}{endpoint}"

    def _failed(self, failure: FetchFailure, exc: Exception, start: float) -> FetchOutcome:
        elapsed = time.perf_counter() - start
        METRICS.increment(f"source.{self.tag}.{failure.value}")
        METRICS.observe(f"source.{self.tag}.latency_ms", elapsed * 1000.0)
        self._logger.warning("%s fetch failed (%s): %s", self.tag, failure.value, exc)
        return FetchOutcome.failed(self.source, failure, str(exc), elapsed_seconds=elapsed)


__all__ = ["Amount", "PayloadError", "SourceAdapter", "WholeAmount"]
