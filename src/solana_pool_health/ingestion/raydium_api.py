"""Adapter for the Raydium v3 pool listing API."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..datalake.schemas import PoolRecord, PoolSource, TokenPair
from .base import Amount, PayloadError, SourceAdapter


class _RaydiumMint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str
    symbol: Optional[str] = None


class _RaydiumPeriod(BaseModel):
    model_config = ConfigDict(extra="ignore")

    volume: Amount


class RaydiumPool(BaseModel):
    """One entry of ``data.data``. ``feeRate`` is already a fraction (0.0025 = 0.25%)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    mint_a: _RaydiumMint = Field(alias="mintA")
    mint_b: _RaydiumMint = Field(alias="mintB")
    price: Optional[Amount] = None
    fee_rate: Amount = Field(alias="feeRate")
    tvl: Amount
    day: _RaydiumPeriod


class _RaydiumPage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    count: int = 0
    data: List[Any]
    has_next_page: bool = Field(default=False, alias="hasNextPage")


class _RaydiumEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool
    data: Optional[_RaydiumPage] = None
    msg: Optional[str] = None


class RaydiumAdapter(SourceAdapter):
    source = PoolSource.RAYDIUM
    entry_model = RaydiumPool

    def _fetch_payloads(self, pair: TokenPair, timeout: float) -> List[Any]:
        deadline = self._deadline(timeout)
        url = self._url(self._config.raydium_base_url, self._config.raydium_pool_endpoint)
        payloads: List[Any] = []
        for page in range(1, self._config.raydium_max_pages + 1):
            payload = self._get_json(
                url,
                deadline=deadline,
                params={
                    "mint1": pair.mint_a,
                    "mint2": pair.mint_b,
                    "poolType": "all",
                    "poolSortField": "default",
                    "sortType": "desc",
                    "pageSize": self._config.raydium_page_size,
                    "page": page,
                },
            )
            payloads.append(payload)
            if not self._envelope(payload).data.has_next_page:
                break
        return payloads

    def _extract_entries(self, payload: Any) -> Sequence[Any]:
        return self._envelope(payload).data.data

    def _envelope(self, payload: Any) -> _RaydiumEnvelope:
        try:
            envelope = _RaydiumEnvelope.model_validate(payload)
        except ValidationError as exc:
            raise PayloadError(f"Unexpected Raydium response shape: {exc}") from exc
        if not envelope.success:
            raise PayloadError(f"Raydium reported failure: {envelope.msg or 'success=false'}")
        if envelope.data is None:
            raise PayloadError("Raydium response is missing the data section")
        return envelope

    def _to_record(self, entry: RaydiumPool, pair: TokenPair) -> Optional[PoolRecord]:
        if not pair.matches(entry.mint_a.address, entry.mint_b.address):
            return None
        name = None
        if entry.mint_a.symbol and entry.mint_b.symbol:
            name = f"{entry.mint_a.symbol}-{entry.mint_b.symbol}"
        return PoolRecord(
            source=self.source,
            token_pair_id=pair.pair_id,
            liquidity_usd=entry.tvl,
            volume_24h_usd=entry.day.volume,
            fee_rate=entry.fee_rate,
            raw_id=entry.id,
            name=name,
            price=entry.price,
        )


__all__ = ["RaydiumAdapter", "RaydiumPool"]
