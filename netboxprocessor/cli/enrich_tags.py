"""CLI that enriches JSON-lines telemetry records with NetBox device tags."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import ExitStack
from itertools import islice
from pathlib import Path
from typing import IO, Iterable, Iterator, List, Optional

from tqdm import tqdm

from ..errors import ConfigError
from ..metric import Metric
from ..processor import NetboxProcessor
from ..settings import ProcessorSettings, load_processor_settings
from ..utils.config import load_processor_config

logger = logging.getLogger(__name__)


def read_metrics(lines: Iterable[str]) -> Iterator[Metric]:
    """Yield metrics from JSON lines, skipping blank and invalid lines."""
    for line_number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            yield Metric.from_dict(json.loads(line))
        except (json.JSONDecodeError, ValueError, TypeError) as exc:
            logger.warning(f"Skipping invalid record on line {line_number}: {exc}")


def _batched(metrics: Iterable[Metric], size: int) -> Iterator[List[Metric]]:
    iterator = iter(metrics)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


def enrich_stream(
    processor: NetboxProcessor,
    source: IO[str],
    sink: IO[str],
    batch_size: int = 1000,
    progress: bool = False,
) -> int:
    """Read metrics from ``source``, enrich them in batches and write them to ``sink``.

    Returns:
        Number of metrics written
    """
    written = 0
    with tqdm(desc="Enriching metrics", unit="metric", disable=not progress) as bar:
        for batch in _batched(read_metrics(source), batch_size):
            for metric in processor.apply(*batch):
                sink.write(json.dumps(metric.to_dict(), ensure_ascii=False))
                sink.write("\n")
                written += 1
            bar.update(len(batch))
    sink.flush()
    return written


def _load_settings(config_path: Optional[str]) -> ProcessorSettings:
    if config_path is not None and not Path(config_path).exists():
        raise ConfigError(f"Configuration file not found: {config_path}")
    return load_processor_settings(load_processor_config(config_path))


def main(argv: Iterable[str] | None = None) -> int:
    """Run the enrichment CLI and return an exit status."""
    parser = argparse.ArgumentParser(description="Enrich telemetry tags with NetBox device, site and region")
    parser.add_argument("--config", help="Path to netbox.toml (default: config/netbox.toml or ./netbox.toml)")
    parser.add_argument("--input", help="JSON-lines input file (default: stdin)")
    parser.add_argument("--output", help="JSON-lines output file (default: stdout)")
    parser.add_argument("--batch-size", type=int, default=1000, help="Metrics per processor batch")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar on stderr")
    parser.add_argument("--stats", action="store_true", help="Print processor statistics to stderr when done")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    if args.batch_size <= 0:
        parser.error("--batch-size must be positive")

    try:
        settings = _load_settings(args.config)
    except ConfigError as exc:
        logger.error(str(exc))
        return 2

    processor = NetboxProcessor(settings)
    with ExitStack() as stack:
        try:
            source = stack.enter_context(open(args.input, encoding="utf-8")) if args.input else sys.stdin
            sink = stack.enter_context(open(args.output, "w", encoding="utf-8")) if args.output else sys.stdout
        except OSError as exc:
            logger.error(f"Unable to open {exc.filename}: {exc.strerror}")
            return 2
        count = enrich_stream(processor, source, sink, batch_size=args.batch_size, progress=args.progress)

    logger.info(f"Enriched {count} metrics")
    if args.stats:
        print(json.dumps(processor.get_stats(), indent=2), file=sys.stderr)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
