"""Adapter for Meteora dynamic AMM pools."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from ..datalake.schemas import PoolRecord, PoolSource, TokenPair
from .base import Amount, PayloadError, SourceAdapter


class MeteoraDynamicPool(BaseModel):
    """Entry of ``/pools/search``. ``total_fee_pct`` is a percentage string ("0.25")."""

    model_config = ConfigDict(extra="ignore")

    pool_address: str
    pool_name: Optional[str] = None
    pool_token_mints: List[str]
    pool_tvl: Amount
    trading_volume: Amount
    total_fee_pct: Amount


class _MeteoraDynamicEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: List[Any]
    page: int = 0
    total_count: int = 0


class MeteoraDynamicAdapter(SourceAdapter):
    source = PoolSource.METEORA_DYNAMIC
    entry_model = MeteoraDynamicPool

    def _fetch_payloads(self, pair: TokenPair, timeout: float) -> List[Any]:
        url = self._url(
            self._config.meteora_dynamic_base_url,
            self._config.meteora_dynamic_pool_endpoint,
        )
        payload = self._get_json(
            url,
            deadline=self._deadline(timeout),
            params={
                "page": 1,
                "size": self._config.meteora_dynamic_page_size,
                "include_pool_token_pairs": pair.pair_id,
            },
        )
        return [payload]

    def _extract_entries(self, payload: Any) -> Sequence[Any]:
        try:
            return _MeteoraDynamicEnvelope.model_validate(payload).data
        except ValidationError as exc:
            raise PayloadError(f"Unexpected Meteora response shape: {exc}") from exc

    def _to_record(self, entry: MeteoraDynamicPool, pair: TokenPair) -> Optional[PoolRecord]:
        if len(entry.pool_token_mints) != 2:
            raise ValueError(
                f"Pool {entry.pool_address} lists {len(entry.pool_token_mints)} token mints"
            )
        if not pair.matches(*entry.pool_token_mints):
            return None
        return PoolRecord(
            source=self.source,
            token_pair_id=pair.pair_id,
            liquidity_usd=entry.pool_tvl,
            volume_24h_usd=entry.trading_volume,
            fee_rate=entry.total_fee_pct / 100.0,
            raw_id=entry.pool_address,
            name=entry.pool_name,
        )


__all__ = ["MeteoraDynamicAdapter", "MeteoraDynamicPool"]
