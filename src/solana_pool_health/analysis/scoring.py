"""Composite health score for pool candidates."""

from __future__ import annotations

from typing import List, Sequence

from ..config.settings import ScoringConfig, get_app_config
from ..datalake.schemas import PoolRecord, ScoredPool
from ..monitoring.logger import get_logger

# Normalized value assigned to every candidate when a metric does not vary.
DEGENERATE_COMPONENT = 0.5


def _normalize(value: float, low: float, high: float) -> float:
    if high == low:
        return DEGENERATE_COMPONENT
    return (value - low) / (high - low)


class HealthScorer:
    """Min-max normalizes liquidity, volume and fee over the candidate set and weights them.

    Normalization is scoped to the candidates of one query. When all candidates share
    a metric value (always the case for a single candidate) that metric contributes
    0.5, so a lone pool or a set of identical pools scores exactly 0.5.
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or get_app_config().scoring
        self._logger = get_logger(__name__)

    def score(self, candidates: Sequence[PoolRecord]) -> List[ScoredPool]:
        pools = [pool for pool in candidates if pool.is_valid()]
        if len(pools) != len(candidates):
            self._logger.warning(
                "Ignoring %d invalid candidates during scoring", len(candidates) - len(pools)
            )
        if not pools:
            return []

        liquidity = [pool.liquidity_usd for pool in pools]
        volume = [pool.volume_24h_usd for pool in pools]
        fees = [pool.fee_rate for pool in pools]
        liquidity_range = (min(liquidity), max(liquidity))
        volume_range = (min(volume), max(volume))
        fee_range = (min(fees), max(fees))

        scored: List[ScoredPool] = []
        for pool in pools:
            liquidity_component = _normalize(pool.liquidity_usd, *liquidity_range)
            volume_component = _normalize(pool.volume_24h_usd, *volume_range)
            fee_component = 1.0 - _normalize(pool.fee_rate, *fee_range)
            health = (
                self._config.liquidity_weight * liquidity_component
                + self._config.volume_weight * volume_component
                + self._config.fee_weight * fee_component
            )
            scored.append(
                ScoredPool(
                    pool=pool,
                    health_score=max(0.0, min(health, 1.0)),
                    liquidity_component=liquidity_component,
                    volume_component=volume_component,
                    fee_component=fee_component,
                )
            )
        return scored


__all__ = ["DEGENERATE_COMPONENT", "HealthScorer"]
