"""Adapter for the Orca whirlpool REST listing."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..datalake.schemas import PoolRecord, PoolSource, TokenPair
from .base import Amount, PayloadError, SourceAdapter, WholeAmount

# Orca reports fees in hundredths of a basis point (3000 == 0.30%).
ORCA_FEE_DENOMINATOR = 1_000_000


class _OrcaToken(BaseModel):
    model_config = ConfigDict(extra="ignore")

    symbol: Optional[str] = None


class _OrcaStatsPeriod(BaseModel):
    model_config = ConfigDict(extra="ignore")

    volume: Optional[Amount] = None


class _OrcaStats(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    day: _OrcaStatsPeriod = Field(alias="24h")


class OrcaPool(BaseModel):
    """One whirlpool of the ``data`` array. Numeric amounts arrive as strings."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    address: str
    token_mint_a: str = Field(alias="tokenMintA")
    token_mint_b: str = Field(alias="tokenMintB")
    fee_rate: WholeAmount = Field(alias="feeRate")
    tvl_usdc: Amount = Field(alias="tvlUsdc")
    price: Optional[Amount] = None
    stats: _OrcaStats
    token_a: Optional[_OrcaToken] = Field(default=None, alias="tokenA")
    token_b: Optional[_OrcaToken] = Field(default=None, alias="tokenB")


class _OrcaEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: List[Any]


class OrcaAdapter(SourceAdapter):
    source = PoolSource.ORCA
    entry_model = OrcaPool

    def _fetch_payloads(self, pair: TokenPair, timeout: float) -> List[Any]:
        url = self._url(self._config.orca_base_url, self._config.orca_pool_endpoint)
        payload = self._get_json(
            url,
            deadline=self._deadline(timeout),
            params={
                "tokensBothOf": f"{pair.mint_a},{pair.mint_b}",
                "limit": self._config.orca_page_limit,
            },
        )
        return [payload]

    def _extract_entries(self, payload: Any) -> Sequence[Any]:
        try:
            return _OrcaEnvelope.model_validate(payload).data
        except ValidationError as exc:
            raise PayloadError(f"Unexpected Orca response shape: {exc}") from exc

    def _to_record(self, entry: OrcaPool, pair: TokenPair) -> Optional[PoolRecord]:
        if not pair.matches(entry.token_mint_a, entry.token_mint_b):
            return None
        name = None
        if entry.token_a and entry.token_b and entry.token_a.symbol and entry.token_b.symbol:
            name = f"{entry.token_a.symbol}-{entry.token_b.symbol}"
        # A pool without recorded trades reports a null 24h volume.
        volume = entry.stats.day.volume if entry.stats.day.volume is not None else 0.0
        return PoolRecord(
            source=self.source,
            token_pair_id=pair.pair_id,
            liquidity_usd=entry.tvl_usdc,
            volume_24h_usd=volume,
            fee_rate=entry.fee_rate / ORCA_FEE_DENOMINATOR,
            raw_id=entry.address,
            name=name,
            price=entry.price,
        )


__all__ = ["ORCA_FEE_DENOMINATOR", "OrcaAdapter", "OrcaPool"]
