"""Caller-facing entry point: find the healthiest pool for a token pair."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

from .analysis.scoring import HealthScorer
from .analysis.selection import rank, select
from .config.settings import AppConfig, get_app_config
from .datalake.schemas import AggregationResult, TokenPair, TokenPairValidationError
from .ingestion.aggregator import Aggregator, build_default_adapters
from .ingestion.base import SourceAdapter
from .ingestion.http import Fetcher, HttpFetcher
from .monitoring.logger import correlation_scope, get_logger, new_correlation_id

PairLike = Union[str, TokenPair, Tuple[str, str]]


def _coerce_pair(pair: PairLike) -> TokenPair:
    if isinstance(pair, tuple):
        if len(pair) != 2:
            raise TokenPairValidationError(
                f"A token pair needs exactly two mints, got {len(pair)}"
            )
        return TokenPair.parse(*pair)
    return TokenPair.parse(pair)


class PoolFinder:
    """Wires adapters, aggregator, scorer and selector into one query."""

    def __init__(
        self,
        adapters: Optional[Sequence[SourceAdapter]] = None,
        scorer: Optional[HealthScorer] = None,
        fetcher: Optional[Fetcher] = None,
        app_config: Optional[AppConfig] = None,
    ) -> None:
        self._app_config = app_config or get_app_config()
        self._owned_fetcher: Optional[HttpFetcher] = None
        if adapters is None:
            if fetcher is None:
                self._owned_fetcher = HttpFetcher(self._app_config.data_sources)
                fetcher = self._owned_fetcher
            adapters = build_default_adapters(
                fetcher,
                self._app_config.data_sources,
                self._app_config.aggregation.enabled_sources,
            )
        self._aggregator = Aggregator(adapters)
        self._scorer = scorer or HealthScorer(self._app_config.scoring)
        self._logger = get_logger(__name__)

    def find(self, pair: PairLike, per_source_timeout: Optional[float] = None) -> AggregationResult:
        token_pair = _coerce_pair(pair)
        timeout = (
            per_source_timeout
            if per_source_timeout is not None
            else self._app_config.aggregation.per_source_timeout
        )
        with correlation_scope(new_correlation_id()):
            records, outcomes = self._aggregator.aggregate(token_pair, timeout)
            scored = self._scorer.score(records)
            best = select(scored)
            if best is None:
                self._logger.info("No healthy pool found for %s", token_pair)
            else:
                self._logger.info(
                    "Healthiest pool for %s is %s %s (score %.3f)",
                    token_pair,
                    best.pool.source.value,
                    best.pool.raw_id,
                    best.health_score,
                )
            return AggregationResult(
                token_pair=token_pair,
                best_pool=best,
                outcomes=tuple(outcomes),
                ranked=tuple(rank(scored)),
            )

    def close(self) -> None:
        if self._owned_fetcher is not None:
            self._owned_fetcher.close()

    def __enter__(self) -> "PoolFinder":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def find_healthiest_pool(
    token_pair: PairLike,
    per_source_timeout: Optional[float] = None,
    *,
    app_config: Optional[AppConfig] = None,
) -> AggregationResult:
    """Query every enabled source for ``token_pair`` and return the healthiest pool."""

    pair = _coerce_pair(token_pair)
    with PoolFinder(app_config=app_config) as finder:
        return finder.find(pair, per_source_timeout)


__all__ = ["PoolFinder", "find_healthiest_pool"]
