"""Normalization and failure mapping of the four source adapters."""

from __future__ import annotations

import json
import time

import pytest
import requests

from solana_pool_health.config import settings
from solana_pool_health.datalake.schemas import FetchFailure, PoolSource, TokenPair
from solana_pool_health.ingestion.dlmm_api import DlmmAdapter
from solana_pool_health.ingestion.http import FetchNetworkError, FetchTimeoutError, HttpFetcher
from solana_pool_health.ingestion.meteora_dynamic_api import MeteoraDynamicAdapter
from solana_pool_health.ingestion.orca_api import OrcaAdapter
from solana_pool_health.ingestion.raydium_api import RaydiumAdapter
from solana_pool_health.monitoring.metrics import METRICS

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
JUP = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"
PAIR = TokenPair.parse(SOL, USDC)


class FakeFetcher:
    """Replays queued responses: dicts are JSON encoded, exceptions are raised."""

    def __init__(self, *responses, delay: float = 0.0) -> None:
        self._responses = list(responses)
        self._delay = delay
        self.calls: list[dict] = []

    def fetch(self, url, *, method="GET", timeout, params=None):
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        if self._delay:
            time.sleep(self._delay)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, bytes):
            return response
        return json.dumps(response).encode()


def _config(**overrides) -> settings.DataSourceConfig:
    return settings.DataSourceConfig(**overrides)


# Raydium ------------------------------------------------------------------


def _raydium_pool(pool_id, *, mint_a=SOL, mint_b=USDC, tvl=1_000.0, volume=500.0, fee=0.0025):
    return {
        "type": "Standard",
        "id": pool_id,
        "mintA": {"address": mint_a, "symbol": "SOL"},
        "mintB": {"address": mint_b, "symbol": "USDC"},
        "price": 151.25,
        "feeRate": fee,
        "tvl": tvl,
        "day": {"volume": volume, "apr": 12.0},
    }


def _raydium_page(pools, *, has_next=False, success=True):
    return {
        "id": "req-1",
        "success": success,
        "data": {"count": len(pools), "data": pools, "hasNextPage": has_next},
    }


def test_raydium_maps_pools() -> None:
    fetcher = FakeFetcher(_raydium_page([_raydium_pool("ray-1", tvl=2_500.0, volume=800.0)]))
    adapter = RaydiumAdapter(fetcher, _config())

    outcome = adapter.fetch_pools(PAIR, 5.0)

    assert outcome.ok
    [record] = outcome.records
    assert record.source is PoolSource.RAYDIUM
    assert record.token_pair_id == PAIR.pair_id
    assert record.liquidity_usd == 2_500.0
    assert record.volume_24h_usd == 800.0
    assert record.fee_rate == 0.0025
    assert record.raw_id == "ray-1"
    assert record.name == "SOL-USDC"
    assert record.price == 151.25
    [call] = fetcher.calls
    assert call["url"] == "https://api-v3.raydium.io/pools/info/mint"
    assert call["params"]["mint1"] == USDC
    assert call["params"]["mint2"] == SOL
    assert call["params"]["page"] == 1
    assert 0 < call["timeout"] <= 5.0


def test_raydium_skips_malformed_entry_and_keeps_the_rest() -> None:
    METRICS.reset()
    bad = _raydium_pool("ray-bad")
    bad["tvl"] = "not-a-number"
    missing_day = _raydium_pool("ray-missing")
    del missing_day["day"]
    fetcher = FakeFetcher(
        _raydium_page([_raydium_pool("ray-1"), bad, missing_day, _raydium_pool("ray-2")])
    )

    outcome = RaydiumAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert outcome.ok
    assert [record.raw_id for record in outcome.records] == ["ray-1", "ray-2"]
    assert outcome.skipped_entries == 2
    assert METRICS.get("source.Raydium.skipped_entries") == 2
    assert METRICS.get("source.Raydium.success") == 1


def test_raydium_ignores_pools_for_other_pairs() -> None:
    fetcher = FakeFetcher(
        _raydium_page([_raydium_pool("ray-1"), _raydium_pool("ray-jup", mint_b=JUP)])
    )

    outcome = RaydiumAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert [record.raw_id for record in outcome.records] == ["ray-1"]
    assert outcome.skipped_entries == 0


def test_raydium_follows_pagination_up_to_limit() -> None:
    fetcher = FakeFetcher(
        _raydium_page([_raydium_pool("ray-1")], has_next=True),
        _raydium_page([_raydium_pool("ray-2")], has_next=True),
    )

    outcome = RaydiumAdapter(fetcher, _config(raydium_max_pages=2)).fetch_pools(PAIR, 5.0)

    assert [record.raw_id for record in outcome.records] == ["ray-1", "ray-2"]
    assert [call["params"]["page"] for call in fetcher.calls] == [1, 2]


def test_raydium_unsuccessful_envelope_is_parse_error() -> None:
    fetcher = FakeFetcher({"id": "req-1", "success": False, "msg": "bad mint"})

    outcome = RaydiumAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert outcome.failure is FetchFailure.PARSE_ERROR
    assert "bad mint" in outcome.detail
    assert outcome.records == ()


def test_invalid_json_is_parse_error() -> None:
    fetcher = FakeFetcher(b"<html>maintenance</html>")

    outcome = RaydiumAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert outcome.failure is FetchFailure.PARSE_ERROR


@pytest.mark.parametrize(
    "error, failure",
    [
        (FetchTimeoutError("slow"), FetchFailure.TIMEOUT),
        (FetchNetworkError("HTTP 503", status_code=503), FetchFailure.NETWORK_ERROR),
    ],
)
def test_fetch_errors_map_to_failure_tags(error, failure) -> None:
    METRICS.reset()
    adapters = [
        RaydiumAdapter(FakeFetcher(error), _config()),
        OrcaAdapter(FakeFetcher(error), _config()),
        MeteoraDynamicAdapter(FakeFetcher(error), _config()),
        DlmmAdapter(FakeFetcher(error), _config()),
    ]

    outcomes = [adapter.fetch_pools(PAIR, 5.0) for adapter in adapters]

    assert [outcome.failure for outcome in outcomes] == [failure] * 4
    assert all(outcome.records == () for outcome in outcomes)
    assert METRICS.get(f"source.Orca.{failure.value}") == 1


# Orca ---------------------------------------------------------------------


def _orca_pool(address, *, mint_a=USDC, mint_b=SOL, fee=3000, tvl="2500.5", volume="1234.5"):
    return {
        "address": address,
        "tokenMintA": mint_a,
        "tokenMintB": mint_b,
        "feeRate": fee,
        "tvlUsdc": tvl,
        "price": "150.1",
        "tokenA": {"symbol": "USDC"},
        "tokenB": {"symbol": "SOL"},
        "stats": {"24h": {"volume": volume}, "7d": {"volume": "9000"}},
    }


def test_orca_converts_fee_and_string_amounts() -> None:
    fetcher = FakeFetcher({"data": [_orca_pool("orca-1")], "meta": {"cursor": {}}})

    outcome = OrcaAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    [record] = outcome.records
    assert record.source is PoolSource.ORCA
    assert record.liquidity_usd == 2500.5
    assert record.volume_24h_usd == 1234.5
    assert record.fee_rate == pytest.approx(0.003)
    assert record.raw_id == "orca-1"
    assert record.name == "USDC-SOL"
    assert record.price == pytest.approx(150.1)
    [call] = fetcher.calls
    assert call["url"] == "https://api.orca.so/v2/solana/pools"
    assert call["params"]["tokensBothOf"] == f"{USDC},{SOL}"
    assert call["params"]["limit"] == 50


def test_orca_null_volume_is_zero() -> None:
    fetcher = FakeFetcher({"data": [_orca_pool("orca-1", volume=None)], "meta": {}})

    [record] = OrcaAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0).records

    assert record.volume_24h_usd == 0.0


def test_orca_skips_malformed_entry() -> None:
    broken = _orca_pool("orca-broken")
    del broken["tvlUsdc"]
    fetcher = FakeFetcher(
        {"data": [broken, _orca_pool("orca-1"), "garbage", _orca_pool("orca-2")], "meta": {}}
    )

    outcome = OrcaAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert [record.raw_id for record in outcome.records] == ["orca-1", "orca-2"]
    assert outcome.skipped_entries == 2


def test_orca_unexpected_shape_is_parse_error() -> None:
    fetcher = FakeFetcher({"error": "internal"})

    outcome = OrcaAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert outcome.failure is FetchFailure.PARSE_ERROR


# Meteora dynamic AMM -------------------------------------------------------


def _dynamic_pool(address, *, mints=(USDC, SOL), tvl="5000.25", volume=321.0, fee="0.25"):
    return {
        "pool_address": address,
        "pool_name": "USDC-SOL",
        "pool_token_mints": list(mints),
        "pool_tvl": tvl,
        "trading_volume": volume,
        "total_fee_pct": fee,
        "pool_version": 2,
    }


def test_meteora_dynamic_converts_percent_fee() -> None:
    fetcher = FakeFetcher({"data": [_dynamic_pool("dyn-1")], "page": 0, "total_count": 1})

    outcome = MeteoraDynamicAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    [record] = outcome.records
    assert record.source is PoolSource.METEORA_DYNAMIC
    assert record.liquidity_usd == 5000.25
    assert record.volume_24h_usd == 321.0
    assert record.fee_rate == pytest.approx(0.0025)
    assert record.name == "USDC-SOL"
    [call] = fetcher.calls
    assert call["url"] == "https://amm-v2.meteora.ag/pools/search"
    assert call["params"]["include_pool_token_pairs"] == f"{USDC}-{SOL}"
    assert call["params"]["size"] == 10


def test_meteora_dynamic_skips_entries_with_unexpected_mint_count() -> None:
    fetcher = FakeFetcher(
        {
            "data": [
                _dynamic_pool("dyn-triple", mints=(USDC, SOL, JUP)),
                _dynamic_pool("dyn-1"),
                _dynamic_pool("dyn-bad-fee", fee="n/a"),
            ],
            "page": 0,
            "total_count": 3,
        }
    )

    outcome = MeteoraDynamicAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert [record.raw_id for record in outcome.records] == ["dyn-1"]
    assert outcome.skipped_entries == 2


# Meteora DLMM -------------------------------------------------------------


def _dlmm_pair(address, *, mint_x=SOL, mint_y=USDC, liquidity="12345.6", fee="0.2", **flags):
    payload = {
        "address": address,
        "name": "SOL-USDC",
        "mint_x": mint_x,
        "mint_y": mint_y,
        "liquidity": liquidity,
        "trade_volume_24h": 4567.8,
        "base_fee_percentage": fee,
        "current_price": 149.9,
        "hide": False,
        "is_blacklisted": False,
    }
    payload.update(flags)
    return payload


def test_dlmm_flattens_groups_and_skips_hidden_pairs() -> None:
    fetcher = FakeFetcher(
        {
            "groups": [
                {"name": "SOL-USDC", "pairs": [_dlmm_pair("dlmm-1"), _dlmm_pair("dlmm-h", hide=True)]},
                {
                    "name": "SOL-USDC",
                    "pairs": [_dlmm_pair("dlmm-2", fee="0.05"), _dlmm_pair("dlmm-b", is_blacklisted=True)],
                },
            ],
            "total": 4,
        }
    )

    outcome = DlmmAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert [record.raw_id for record in outcome.records] == ["dlmm-1", "dlmm-2"]
    assert outcome.skipped_entries == 0
    first, second = outcome.records
    assert first.source is PoolSource.METEORA_DLMM
    assert first.liquidity_usd == 12345.6
    assert first.volume_24h_usd == 4567.8
    assert first.fee_rate == pytest.approx(0.002)
    assert first.price == 149.9
    assert second.fee_rate == pytest.approx(0.0005)
    [call] = fetcher.calls
    assert call["url"] == "https://dlmm-api.meteora.ag/pair/all_by_groups"
    assert call["params"]["page"] == 0
    assert call["params"]["include_pool_token_pairs"] == PAIR.pair_id


def test_dlmm_skips_malformed_pair() -> None:
    fetcher = FakeFetcher(
        {
            "groups": [
                {"name": "SOL-USDC", "pairs": [_dlmm_pair("dlmm-bad", liquidity=None), _dlmm_pair("dlmm-1")]}
            ],
            "total": 2,
        }
    )

    outcome = DlmmAdapter(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert [record.raw_id for record in outcome.records] == ["dlmm-1"]
    assert outcome.skipped_entries == 1


def test_dlmm_missing_groups_is_parse_error() -> None:
    outcome = DlmmAdapter(FakeFetcher({"pairs": []}), _config()).fetch_pools(PAIR, 5.0)

    assert outcome.failure is FetchFailure.PARSE_ERROR


# Shared adapter behaviour -------------------------------------------------


def test_raydium_pagination_stops_when_the_budget_runs_out() -> None:
    fetcher = FakeFetcher(
        *[_raydium_page([_raydium_pool(f"ray-{page}")], has_next=True) for page in range(5)],
        delay=0.15,
    )

    outcome = RaydiumAdapter(fetcher, _config(raydium_max_pages=5)).fetch_pools(PAIR, 0.2)

    assert outcome.failure is FetchFailure.TIMEOUT
    assert outcome.records == ()
    assert len(fetcher.calls) == 2
    assert fetcher.calls[1]["timeout"] < fetcher.calls[0]["timeout"]


class _Unavailable:
    def __init__(self, delay: float) -> None:
        self._delay = delay
        self.calls = 0

    def request(self, method, url, **kwargs):
        self.calls += 1
        time.sleep(min(self._delay, kwargs["timeout"]))
        response = requests.Response()
        response.status_code = 503
        return response

    def close(self) -> None:
        pass


def test_retried_source_reports_timeout_within_its_budget() -> None:
    session = _Unavailable(delay=0.2)
    fetcher = HttpFetcher(_config(retry_attempts=5), session=session)

    started = time.monotonic()
    outcome = OrcaAdapter(fetcher, _config()).fetch_pools(PAIR, 0.5)

    assert outcome.failure is FetchFailure.TIMEOUT
    assert time.monotonic() - started < 1.0
    assert session.calls < 5


@pytest.mark.parametrize(
    ("adapter_type", "document"),
    [
        (
            RaydiumAdapter,
            _raydium_page([_raydium_pool("ray-bool", tvl=True), _raydium_pool("ray-1")]),
        ),
        (
            OrcaAdapter,
            {"data": [_orca_pool("orca-bool", fee=False), _orca_pool("orca-1")], "meta": {}},
        ),
        (
            MeteoraDynamicAdapter,
            {"data": [_dynamic_pool("dyn-bool", volume=True), _dynamic_pool("dyn-1")]},
        ),
        (
            DlmmAdapter,
            {"groups": [{"pairs": [_dlmm_pair("dlmm-bool", liquidity=True), _dlmm_pair("dlmm-1")]}]},
        ),
    ],
)
def test_boolean_amounts_are_skipped(adapter_type, document) -> None:
    outcome = adapter_type(FakeFetcher(document), _config()).fetch_pools(PAIR, 5.0)

    assert outcome.ok
    assert len(outcome.records) == 1
    assert not outcome.records[0].raw_id.endswith("-bool")
    assert outcome.skipped_entries == 1


class _LookupFailingOrca(OrcaAdapter):
    def _to_record(self, entry, pair):
        if entry.address == "orca-broken":
            return {}["missing"]
        return super()._to_record(entry, pair)


def test_mapping_fault_counts_as_skipped_entry() -> None:
    fetcher = FakeFetcher({"data": [_orca_pool("orca-broken"), _orca_pool("orca-1")], "meta": {}})

    outcome = _LookupFailingOrca(fetcher, _config()).fetch_pools(PAIR, 5.0)

    assert outcome.ok
    assert [record.raw_id for record in outcome.records] == ["orca-1"]
    assert outcome.skipped_entries == 1
