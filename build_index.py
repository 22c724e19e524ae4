#!/usr/bin/env python3
import argparse
import logging
import sys

from crawl import setup_logging
from sitesearch.config import DEFAULT_BATCH_SIZE, IndexConfig
from sitesearch.errors import SiteSearchError
from sitesearch.indexer import build_index
from sitesearch.metrics import Metrics, StatsLogger
from sitesearch.prometheus_exporter import PrometheusExporter


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild the full-text index from crawl artifacts.")
    parser.add_argument("--data-dir", default="data", help="Directory holding the crawl artifact files.")
    parser.add_argument("--index-path", default="index", help="Index directory (destroyed and recreated).")
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Documents per index commit.")
    parser.add_argument("--metrics-interval", type=float, default=10.0, help="Seconds between progress logs (0 to disable).")
    parser.add_argument("--prometheus-port", type=int, default=None, help="Expose Prometheus metrics on this port.")
    parser.add_argument("-v", "--verbose", action="count", default=1, help="Increase logging verbosity.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)
    config = IndexConfig(data_dir=args.data_dir, index_path=args.index_path, batch_size=args.batch_size)

    metrics = Metrics()
    exporter = None
    if args.prometheus_port:
        exporter = PrometheusExporter(metrics, port=args.prometheus_port)
        exporter.start()

    stats = None
    if args.metrics_interval > 0:
        stats = StatsLogger(metrics, args.metrics_interval, logging.info)
        stats.start()

    try:
        build_index(config, metrics=metrics)
    except SiteSearchError as exc:
        logging.error("Indexing aborted: %s", exc)
        return 1
    finally:
        if stats:
            stats.stop()
        if exporter:
            exporter.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
