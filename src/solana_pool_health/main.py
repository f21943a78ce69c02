"""Command line entrypoint for the pool health finder."""

from __future__ import annotations

import argparse
import json
import sys
import tomllib
from typing import Dict, List, Optional, Sequence, TextIO

from pydantic import ValidationError
from pydantic_settings import SettingsError

from .config.settings import get_app_config
from .datalake.schemas import AggregationResult, ScoredPool, TokenPairValidationError
from .finder import PoolFinder
from .monitoring import bootstrap_observability

EXIT_OK = 0
EXIT_INVALID_PAIR = 2
EXIT_INVALID_CONFIG = 3


def _pool_payload(scored: ScoredPool) -> Dict[str, object]:
    pool = scored.pool
    return {
        "source": pool.source.value,
        "name": pool.name,
        "address": pool.raw_id,
        "liquidity_usd": pool.liquidity_usd,
        "volume_24h_usd": pool.volume_24h_usd,
        "fee_rate": pool.fee_rate,
        "price": pool.price,
        "health_score": scored.health_score,
        "components": {
            "liquidity": scored.liquidity_component,
            "volume": scored.volume_component,
            "fee": scored.fee_component,
        },
    }


def result_to_dict(result: AggregationResult, top: Optional[int] = None) -> Dict[str, object]:
    ranked = list(result.ranked if top is None else result.ranked[:top])
    return {
        "token_pair": result.token_pair.pair_id,
        "best_pool": _pool_payload(result.best_pool) if result.best_pool else None,
        "ranked": [_pool_payload(item) for item in ranked],
        "sources": [
            {
                "source": outcome.source.value,
                "status": outcome.status,
                "pools": len(outcome.records),
                "skipped_entries": outcome.skipped_entries,
                "elapsed_seconds": round(outcome.elapsed_seconds, 3),
                "detail": outcome.detail,
            }
            for outcome in result.outcomes
        ],
    }


def render_report(result: AggregationResult, top: int = 1) -> str:
    lines: List[str] = [f"Token pair: {result.token_pair.pair_id}"]
    best = result.best_pool
    if best is None:
        lines.append("No healthy pool found across the queried sources.")
    else:
        pool = best.pool
        lines.extend(
            [
                f"Best pool found on: {pool.source.value}",
                f"Pool name: {pool.name or '-'}",
                f"Pool address: {pool.raw_id}",
                f"Liquidity: ${pool.liquidity_usd:,.2f}",
                f"24h Volume: ${pool.volume_24h_usd:,.2f}",
                f"Fee rate: {pool.fee_rate * 100:.4f}%",
                f"Health score: {best.health_score:.4f} (out of 1.0)",
            ]
        )
        if top > 1 and len(result.ranked) > 1:
            lines.append("")
            lines.append("Ranking:")
            for position, scored in enumerate(result.ranked[:top], start=1):
                lines.append(
                    f"  {position}. {scored.pool.source.value:<15} {scored.pool.raw_id}"
                    f"  score={scored.health_score:.4f}"
                    f"  liquidity=${scored.pool.liquidity_usd:,.2f}"
                )
    lines.append("")
    lines.append("Sources:")
    for outcome in result.outcomes:
        status = outcome.status
        if outcome.ok:
            status = f"{status} ({len(outcome.records)} pools)"
        lines.append(f"  {outcome.source.value:<15} {status}")
    return "\n".join(lines)


def _first_line(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        error = exc.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        return f"{location}: {error['msg']}" if location else error["msg"]
    return str(exc).splitlines()[0]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Find the healthiest Solana liquidity pool for a token pair"
    )
    parser.add_argument("mint_a", help="Mint address of the first token")
    parser.add_argument("mint_b", help="Mint address of the second token")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-source timeout in seconds (default: aggregation.per_source_timeout)",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=1,
        help="Number of ranked pools to display (default: 1)",
    )
    parser.add_argument("--json", action="store_true", default=False, help="Emit JSON output")
    parser.add_argument(
        "--metrics",
        action="store_true",
        default=False,
        help="Also print the collected metrics (Prometheus text, or a \"metrics\" key with --json)",
    )
    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    finder: Optional[PoolFinder] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    out = stdout or sys.stdout
    if args.timeout is not None and args.timeout <= 0:
        parser.error("--timeout must be positive")
    if args.top < 1:
        parser.error("--top must be at least 1")

    try:
        app_config = get_app_config()
    except (ValidationError, SettingsError, tomllib.TOMLDecodeError) as exc:
        print(f"Invalid configuration: {_first_line(exc)}", file=sys.stderr)
        return EXIT_INVALID_CONFIG
    metrics = bootstrap_observability(config=app_config)
    pool_finder = finder or PoolFinder(app_config=app_config)
    try:
        result = pool_finder.find((args.mint_a, args.mint_b), args.timeout)
    except TokenPairValidationError as exc:
        print(f"Invalid token pair: {exc}", file=sys.stderr)
        return EXIT_INVALID_PAIR
    finally:
        if finder is None:
            pool_finder.close()

    if args.json:
        payload = result_to_dict(result, args.top)
        if args.metrics:
            payload["metrics"] = metrics.snapshot()
        out.write(json.dumps(payload, indent=2) + "\n")
    else:
        out.write(render_report(result, args.top) + "\n")
        if args.metrics:
            out.write("\n" + metrics.export_prometheus())
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
