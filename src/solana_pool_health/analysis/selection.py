"""Deterministic ranking of scored pools."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from ..datalake.schemas import ScoredPool


def ranking_key(scored: ScoredPool) -> Tuple[float, float, str, str]:
    """Total order: higher score, then higher liquidity, then source tag, then pool id."""

    return (
        -scored.health_score,
        -scored.pool.liquidity_usd,
        scored.pool.source.value,
        scored.pool.raw_id,
    )


def rank(scored: Iterable[ScoredPool]) -> List[ScoredPool]:
    return sorted(scored, key=ranking_key)


def select(scored: Iterable[ScoredPool]) -> Optional[ScoredPool]:
    """Return the healthiest pool, or ``None`` when there are no candidates."""

    return min(scored, key=ranking_key, default=None)


__all__ = ["rank", "ranking_key", "select"]
