from __future__ import annotations

import math

import pytest

from solana_pool_health.datalake.schemas import (
    FetchFailure,
    FetchOutcome,
    PoolRecord,
    PoolSource,
    TokenPair,
    TokenPairValidationError,
)

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def _record(**overrides) -> PoolRecord:
    values = dict(
        source=PoolSource.ORCA,
        token_pair_id=f"{USDC}-{SOL}",
        liquidity_usd=1_000.0,
        volume_24h_usd=250.0,
        fee_rate=0.003,
        raw_id="pool-1",
    )
    values.update(overrides)
    return PoolRecord(**values)


def test_token_pair_is_order_independent() -> None:
    forward = TokenPair.parse(SOL, USDC)
    backward = TokenPair.parse(USDC, SOL)

    assert forward == backward
    assert forward.mint_a == USDC
    assert forward.mint_b == SOL
    assert forward.pair_id == f"{USDC}-{SOL}"
    assert str(forward) == forward.pair_id


@pytest.mark.parametrize("raw", [f"{SOL}-{USDC}", f"{SOL}/{USDC}", f" {USDC}-{SOL} "])
def test_token_pair_parses_single_string(raw: str) -> None:
    assert TokenPair.parse(raw) == TokenPair.parse(SOL, USDC)


def test_token_pair_parse_returns_existing_pair() -> None:
    pair = TokenPair.parse(SOL, USDC)

    assert TokenPair.parse(pair) is pair


@pytest.mark.parametrize(
    "first, second",
    [
        ("", USDC),
        (SOL, "   "),
        (SOL, SOL),
        (SOL, "abc"),
        ("not_base58_0OIl", USDC),
    ],
)
def test_token_pair_rejects_malformed_input(first: str, second: str) -> None:
    with pytest.raises(TokenPairValidationError):
        TokenPair.parse(first, second)


def test_token_pair_rejects_string_without_two_mints() -> None:
    with pytest.raises(TokenPairValidationError):
        TokenPair.parse(SOL)


def test_token_pair_validation_error_is_value_error() -> None:
    assert issubclass(TokenPairValidationError, ValueError)


def test_token_pair_matches_either_order() -> None:
    pair = TokenPair.parse(SOL, USDC)

    assert pair.matches(SOL, USDC)
    assert pair.matches(USDC, SOL)
    assert not pair.matches(SOL, SOL)


def test_pool_record_validity() -> None:
    assert _record().is_valid()
    assert _record(liquidity_usd=0.0, volume_24h_usd=0.0, fee_rate=0.0).is_valid()
    assert _record(fee_rate=1.0).is_valid()
    assert not _record(liquidity_usd=-1.0).is_valid()
    assert not _record(volume_24h_usd=-0.01).is_valid()
    assert not _record(fee_rate=1.5).is_valid()
    assert not _record(fee_rate=-0.001).is_valid()
    assert not _record(liquidity_usd=math.nan).is_valid()
    assert not _record(volume_24h_usd=math.inf).is_valid()


def test_fetch_outcome_status() -> None:
    ok = FetchOutcome.success(PoolSource.RAYDIUM, [_record()], skipped_entries=2)
    failed = FetchOutcome.failed(PoolSource.ORCA, FetchFailure.TIMEOUT, "slow")

    assert ok.ok and ok.status == "OK"
    assert ok.records == (_record(),)
    assert ok.skipped_entries == 2
    assert not failed.ok
    assert failed.status == "Timeout"
    assert failed.records == ()
    assert failed.detail == "slow"
