from __future__ import annotations

from solana_pool_health.analysis.selection import rank, select
from solana_pool_health.datalake.schemas import PoolRecord, PoolSource, ScoredPool

PAIR_ID = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v-So11111111111111111111111111111111111111112"


def _scored(raw_id: str, score: float, liquidity: float, source=PoolSource.RAYDIUM) -> ScoredPool:
    pool = PoolRecord(
        source=source,
        token_pair_id=PAIR_ID,
        liquidity_usd=liquidity,
        volume_24h_usd=1.0,
        fee_rate=0.003,
        raw_id=raw_id,
    )
    return ScoredPool(
        pool=pool,
        health_score=score,
        liquidity_component=0.0,
        volume_component=0.0,
        fee_component=0.0,
    )


def test_select_returns_highest_score() -> None:
    candidates = [_scored("a", 0.2, 10.0), _scored("b", 0.9, 1.0), _scored("c", 0.5, 100.0)]

    best = select(candidates)

    assert best is not None
    assert best.pool.raw_id == "b"
    assert all(best.health_score >= item.health_score for item in candidates)


def test_select_empty_returns_none() -> None:
    assert select([]) is None
    assert rank([]) == []


def test_score_tie_prefers_higher_liquidity() -> None:
    shallow = _scored("shallow", 0.7, 1_000.0)
    deep = _scored("deep", 0.7, 5_000.0)

    assert select([shallow, deep]) is deep
    assert select([deep, shallow]) is deep


def test_liquidity_tie_prefers_smaller_source_tag() -> None:
    raydium = _scored("x", 0.7, 1_000.0, PoolSource.RAYDIUM)
    orca = _scored("x", 0.7, 1_000.0, PoolSource.ORCA)
    dynamic = _scored("x", 0.7, 1_000.0, PoolSource.METEORA_DYNAMIC)
    dlmm = _scored("x", 0.7, 1_000.0, PoolSource.METEORA_DLMM)

    ordered = rank([raydium, orca, dynamic, dlmm])

    assert [item.pool.source for item in ordered] == [
        PoolSource.METEORA_DLMM,
        PoolSource.METEORA_DYNAMIC,
        PoolSource.ORCA,
        PoolSource.RAYDIUM,
    ]
    assert select([raydium, orca]) is orca


def test_full_tie_prefers_smaller_raw_id() -> None:
    second = _scored("pool-b", 0.4, 10.0)
    first = _scored("pool-a", 0.4, 10.0)

    assert select([second, first]) is first


def test_rank_is_independent_of_input_order() -> None:
    items = [
        _scored("a", 0.3, 10.0),
        _scored("b", 0.9, 1.0),
        _scored("c", 0.9, 2.0),
        _scored("d", 0.3, 10.0, PoolSource.ORCA),
    ]

    expected = ["c", "b", "d", "a"]

    assert [item.pool.raw_id for item in rank(items)] == expected
    assert [item.pool.raw_id for item in rank(reversed(items))] == expected
