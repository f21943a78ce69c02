"""Data models shared by the ingestion and analysis layers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from solders.pubkey import Pubkey


class PoolSource(str, Enum):
    """Pool listing providers, valued by the tag used for tie-breaking."""

    RAYDIUM = "Raydium"
    ORCA = "Orca"
    METEORA_DYNAMIC = "MeteoraDynamic"
    METEORA_DLMM = "MeteoraDLMM"


# Positional order of per-source outcome slots.
SOURCE_ORDER: Tuple[PoolSource, ...] = (
    PoolSource.RAYDIUM,
    PoolSource.ORCA,
    PoolSource.METEORA_DYNAMIC,
    PoolSource.METEORA_DLMM,
)


class FetchFailure(str, Enum):
    """Reasons a single source produced no listing."""

    TIMEOUT = "Timeout"
    NETWORK_ERROR = "NetworkError"
    PARSE_ERROR = "ParseError"


class TokenPairValidationError(ValueError):
    """Raised when a token pair identifier cannot be used for a query."""


def _validate_mint(value: str) -> str:
    mint = value.strip()
    if not mint:
        raise TokenPairValidationError("Token mint must not be empty")
    try:
        Pubkey.from_string(mint)
    except ValueError as exc:
        raise TokenPairValidationError(f"Invalid token mint {mint!r}: {exc}") from exc
    return mint


@dataclass(frozen=True, slots=True)
class TokenPair:
    """Order-independent pair of token mints, stored sorted."""

    mint_a: str
    mint_b: str

    @classmethod
    def parse(cls, first: Union[str, "TokenPair"], second: Optional[str] = None) -> "TokenPair":
        """Build a canonical pair from two mints or a single ``A-B`` / ``A/B`` string."""

        if isinstance(first, TokenPair):
            return first
        if second is None:
            raw = (first or "").strip()
            separator = "-" if "-" in raw else "/"
            parts = raw.split(separator)
            if len(parts) != 2:
                raise TokenPairValidationError(
                    f"Token pair {raw!r} must contain exactly two mints"
                )
            first, second = parts
        mint_a = _validate_mint(first or "")
        mint_b = _validate_mint(second or "")
        if mint_a == mint_b:
            raise TokenPairValidationError(f"Token pair is self-referential: {mint_a}")
        low, high = sorted((mint_a, mint_b))
        return cls(mint_a=low, mint_b=high)

    @property
    def pair_id(self) -> str:
        return f"{self.mint_a}-{self.mint_b}"

    def matches(self, mint_x: str, mint_y: str) -> bool:
        return tuple(sorted((mint_x, mint_y))) == (self.mint_a, self.mint_b)

    def __str__(self) -> str:
        return self.pair_id


def _finite_non_negative(value: float) -> bool:
    return math.isfinite(value) and value >= 0.0


@dataclass(frozen=True, slots=True)
class PoolRecord:
    """Normalized snapshot of one AMM pool as reported by a single provider."""

    source: PoolSource
    token_pair_id: str
    liquidity_usd: float
    volume_24h_usd: float
    fee_rate: float  # fraction per trade, e.g. 0.0025 for 0.25%
    raw_id: str
    name: Optional[str] = None
    price: Optional[float] = None  # provider quote, not converted to USD

    def is_valid(self) -> bool:
        """Return ``True`` when the record may take part in scoring."""

        return (
            _finite_non_negative(self.liquidity_usd)
            and _finite_non_negative(self.volume_24h_usd)
            and math.isfinite(self.fee_rate)
            and 0.0 <= self.fee_rate <= 1.0
        )


@dataclass(frozen=True, slots=True)
class ScoredPool:
    """Pool record with its composite health score and normalized components."""

    pool: PoolRecord
    health_score: float
    liquidity_component: float
    volume_component: float
    fee_component: float


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    """Result of querying one source: records on success, a failure tag otherwise."""

    source: PoolSource
    records: Tuple[PoolRecord, ...] = ()
    failure: Optional[FetchFailure] = None
    detail: Optional[str] = None
    elapsed_seconds: float = 0.0
    skipped_entries: int = 0

    @classmethod
    def success(
        cls,
        source: PoolSource,
        records: Tuple[PoolRecord, ...] | list[PoolRecord],
        *,
        elapsed_seconds: float = 0.0,
        skipped_entries: int = 0,
    ) -> "FetchOutcome":
        return cls(
            source=source,
            records=tuple(records),
            elapsed_seconds=elapsed_seconds,
            skipped_entries=skipped_entries,
        )

    @classmethod
    def failed(
        cls,
        source: PoolSource,
        failure: FetchFailure,
        detail: Optional[str] = None,
        *,
        elapsed_seconds: float = 0.0,
    ) -> "FetchOutcome":
        return cls(source=source, failure=failure, detail=detail, elapsed_seconds=elapsed_seconds)

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def status(self) -> str:
        return "OK" if self.failure is None else self.failure.value


@dataclass(frozen=True, slots=True)
class AggregationResult:
    """Outcome of one query: best pool, ranked candidates and per-source diagnostics."""

    token_pair: TokenPair
    best_pool: Optional[ScoredPool]
    outcomes: Tuple[FetchOutcome, ...]
    ranked: Tuple[ScoredPool, ...] = field(default_factory=tuple)

    @property
    def has_candidates(self) -> bool:
        return self.best_pool is not None

    @property
    def failed_sources(self) -> Tuple[PoolSource, ...]:
        return tuple(outcome.source for outcome in self.outcomes if not outcome.ok)

    def outcome_for(self, source: PoolSource) -> Optional[FetchOutcome]:
        for outcome in self.outcomes:
            if outcome.source == source:
                return outcome
        return None


__all__ = [
    "AggregationResult",
    "FetchFailure",
    "FetchOutcome",
    "PoolRecord",
    "PoolSource",
    "SOURCE_ORDER",
    "ScoredPool",
    "TokenPair",
    "TokenPairValidationError",
]
