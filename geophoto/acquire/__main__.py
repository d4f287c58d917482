"""CLI entrypoint for photo acquisition.

Usage:
    python -m geophoto.acquire [--count 5] [--config config.yaml]
                               [--max-attempts 4] [--seed 42]
                               [--json] [--verbose]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from geophoto.acquire.pipeline import FETCH_CONTEXT, AcquisitionPipeline
from geophoto.acquire.wikimedia import WikimediaSource
from geophoto.config import GeoPhotoConfig
from geophoto.errors import AcquisitionError
from geophoto.metrics import ValidationMetrics
from geophoto.retry import RetryScheduler
from geophoto.types import AcquisitionOutcome
from geophoto.utils.cache import TTLCache
from geophoto.validate.detector import StrategyFormatDetector
from geophoto.validate.verdicts import VerdictCollector

console = Console()


def _build_photo_table(outcome: AcquisitionOutcome) -> Table:
    table = Table(title="Accepted Photos", show_lines=True)
    table.add_column("#", justify="right", width=3)
    table.add_column("Title", style="cyan")
    table.add_column("Format", width=6)
    table.add_column("Year", justify="center", width=6)
    table.add_column("Location", justify="right")
    table.add_column("License")

    for i, photo in enumerate(outcome.photos, start=1):
        coords = photo.coordinates
        table.add_row(
            str(i),
            str(photo.metadata.get("title") or photo.id),
            photo.format,
            str(photo.metadata.get("year") or "-"),
            f"{coords.latitude:.4f}, {coords.longitude:.4f}" if coords else "-",
            str(photo.metadata.get("license") or "-"),
        )
    return table


def _build_summary_panel(outcome: AcquisitionOutcome, metrics: ValidationMetrics) -> Panel:
    snapshot = metrics.snapshot()
    status = "[yellow]partial[/yellow]" if outcome.is_partial else "[green]success[/green]"
    lines = [
        f"[bold]Status:[/bold] {status}",
        f"[bold]Photos:[/bold] {len(outcome.photos)} / {outcome.requested_count}",
        f"[bold]Attempts:[/bold] {outcome.attempts_used}",
        f"[bold]Validations:[/bold] {snapshot.total_validations}",
        f"[bold]Validation success rate:[/bold] {snapshot.success_rate:.1f}%",
    ]
    return Panel(
        "\n".join(lines),
        title="Acquisition Complete",
        border_style="yellow" if outcome.is_partial else "green",
    )


def _outcome_to_dict(outcome: AcquisitionOutcome, metrics: ValidationMetrics) -> dict:
    snapshot = metrics.snapshot()
    return {
        "status": outcome.status.value,
        "requested_count": outcome.requested_count,
        "attempts_used": outcome.attempts_used,
        "photos": [photo.to_dict() for photo in outcome.photos],
        "validation": {
            "total": snapshot.total_validations,
            "success_rate": snapshot.success_rate,
            "cache_hit_rate": snapshot.cache_hit_rate,
        },
    }


async def _acquire(
    config: GeoPhotoConfig, count: int, metrics: ValidationMetrics
) -> AcquisitionOutcome:
    detector = StrategyFormatDetector(config.formats)
    collector = VerdictCollector(
        detector,
        metrics=metrics,
        cache=TTLCache(
            ttl_seconds=config.verdict_cache.ttl_seconds,
            max_size=config.verdict_cache.max_size,
        ),
    )
    try:
        retry = RetryScheduler.from_config(config.retry, context=FETCH_CONTEXT)
        async with WikimediaSource(config.wikimedia, retry=retry) as source:
            pipeline = AcquisitionPipeline(
                source, collector, config=config.acquisition, metrics=metrics,
            )
            return await pipeline.fetch(count)
    finally:
        await detector.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Fetch geotagged photos in a web-displayable format.",
        prog="python -m geophoto.acquire",
    )
    parser.add_argument("--count", "-n", type=int, default=5, help="Photos to fetch (default: 5)")
    parser.add_argument("--config", type=Path, default=None, help="GeoPhoto config YAML")
    parser.add_argument("--max-attempts", type=int, default=None, help="Override attempt limit")
    parser.add_argument("--seed", type=int, default=None, help="Seed for location choice")
    parser.add_argument("--json", action="store_true", help="Output JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    if args.count < 1:
        parser.error("--count must be at least 1")
    if args.max_attempts is not None and args.max_attempts < 1:
        parser.error("--max-attempts must be at least 1")

    if not args.json:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_time=True, show_path=False)],
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    if args.config and not args.config.is_file():
        console.print(f"[red]Error: {args.config} not found[/red]")
        return 1

    config = GeoPhotoConfig.from_yaml(args.config) if args.config else GeoPhotoConfig.default()
    if args.max_attempts is not None:
        config.acquisition.max_attempts = args.max_attempts
    if args.seed is not None:
        config.acquisition.seed = args.seed

    metrics = ValidationMetrics(max_records=config.metrics.max_records)
    if not args.json:
        console.print(f"[bold]Fetching {args.count} photos...[/bold]")

    try:
        outcome = asyncio.run(_acquire(config, args.count, metrics))
    except AcquisitionError as exc:
        if args.json:
            print(json.dumps({"status": "failed", "error": str(exc), "message": exc.user_message}))
        else:
            console.print(f"[red]{exc.user_message}[/red]")
        return 1

    if args.json:
        print(json.dumps(_outcome_to_dict(outcome, metrics), indent=2))
    else:
        console.print()
        console.rule("[bold green]GeoPhoto Acquisition Report[/bold green]")
        console.print()
        console.print(_build_photo_table(outcome))
        console.print()
        console.print(_build_summary_panel(outcome, metrics))
        if args.verbose:
            console.print(metrics.summary())
    return 0


if __name__ == "__main__":
    sys.exit(main())
