"""Adapter for Meteora DLMM pairs."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from ..datalake.schemas import PoolRecord, PoolSource, TokenPair
from .base import Amount, PayloadError, SourceAdapter


class DlmmPair(BaseModel):
    """One DLMM pair. Liquidity is a USD string, ``base_fee_percentage`` a percentage."""

    model_config = ConfigDict(extra="ignore")

    address: str
    name: Optional[str] = None
    mint_x: str
    mint_y: str
    liquidity: Amount
    trade_volume_24h: Amount
    base_fee_percentage: Amount
    current_price: Optional[Amount] = None
    hide: bool = False
    is_blacklisted: bool = False


class _DlmmGroup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    pairs: List[Any]


class _DlmmEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    groups: List[_DlmmGroup]
    total: int = 0


class DlmmAdapter(SourceAdapter):
    source = PoolSource.METEORA_DLMM
    entry_model = DlmmPair

    def _fetch_payloads(self, pair: TokenPair, timeout: float) -> List[Any]:
        url = self._url(self._config.dlmm_base_url, self._config.dlmm_pool_endpoint)
        payload = self._get_json(
            url,
            deadline=self._deadline(timeout),
            params={
                "page": 0,
                "limit": self._config.dlmm_page_limit,
                "include_pool_token_pairs": pair.pair_id,
            },
        )
        return [payload]

    def _extract_entries(self, payload: Any) -> Sequence[Any]:
        try:
            envelope = _DlmmEnvelope.model_validate(payload)
        except ValidationError as exc:
            raise PayloadError(f"Unexpected DLMM response shape: {exc}") from exc
        return [raw for group in envelope.groups for raw in group.pairs]

    def _to_record(self, entry: DlmmPair, pair: TokenPair) -> Optional[PoolRecord]:
        if entry.hide or entry.is_blacklisted:
            self._logger.debug("Ignoring hidden or blacklisted DLMM pair %s", entry.address)
            return None
        if not pair.matches(entry.mint_x, entry.mint_y):
            return None
        return PoolRecord(
            source=self.source,
            token_pair_id=pair.pair_id,
            liquidity_usd=entry.liquidity,
            volume_24h_usd=entry.trade_volume_24h,
            fee_rate=entry.base_fee_percentage / 100.0,
            raw_id=entry.address,
            name=entry.name,
            price=entry.current_price,
        )


__all__ = ["DlmmAdapter", "DlmmPair"]
