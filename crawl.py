#!/usr/bin/env python3
import argparse
import logging
import sys
from urllib.parse import urlparse

from sitesearch.config import CrawlConfig, DEFAULT_USER_AGENT
from sitesearch.engine import Crawler
from sitesearch.errors import ConfigError
from sitesearch.prometheus_exporter import PrometheusExporter


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl seed sites and write page artifacts for indexing.")
    parser.add_argument("--start", nargs="+", required=True, help="One or more entry point URLs.")
    parser.add_argument(
        "--allowed-domain",
        dest="allowed_domains",
        nargs="+",
        default=None,
        help="Domains to allow (e.g., example.com). Defaults to domains of --start.",
    )
    parser.add_argument("--any-domain", action="store_true", help="Follow links to any domain.")
    parser.add_argument("--max-depth", type=int, default=2, help="Maximum link depth from any entry point.")
    parser.add_argument("--parallelism", type=int, default=4, help="Number of concurrent workers.")
    parser.add_argument("--delay", type=float, default=1.0, help="Per-worker politeness delay in seconds.")
    parser.add_argument("--timeout", type=float, default=15.0, help="HTTP read timeout in seconds.")
    parser.add_argument("--retries", type=int, default=0, help="HTTP retries per fetch (default: none).")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header to send.")
    parser.add_argument("--data-dir", default="data", help="Directory that receives the artifact files.")
    parser.add_argument("--ignore-robots", action="store_true", help="Ignore robots.txt (not recommended).")
    parser.add_argument("--metrics-interval", type=float, default=10.0, help="Seconds between progress logs (0 to disable).")
    parser.add_argument("--max-connections", type=int, default=16, help="Max connections per pool for HTTP client.")
    parser.add_argument("--prometheus-port", type=int, default=None, help="Expose Prometheus metrics on this port.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging verbosity.")
    return parser.parse_args(argv)


def setup_logging(verbose: int) -> None:
    log_level = logging.WARNING
    if verbose == 1:
        log_level = logging.INFO
    elif verbose >= 2:
        log_level = logging.DEBUG
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(threadName)s %(message)s",
    )


def infer_domains(urls) -> list:
    inferred = []
    for u in urls:
        host = urlparse(u if "://" in u else "https://" + u).netloc
        if host:
            inferred.append(host.lower())
    return sorted(set(inferred))


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    if args.any_domain:
        allowed_domains = []
    elif args.allowed_domains is None:
        allowed_domains = infer_domains(args.start)
    else:
        allowed_domains = [d.lower() for d in args.allowed_domains]

    config = CrawlConfig(
        entry_points=args.start,
        max_depth=args.max_depth,
        parallelism=args.parallelism,
        delay_seconds=args.delay,
        allowed_domains=allowed_domains,
        data_dir=args.data_dir,
        max_connections=max(1, args.max_connections),
        request_timeout=max(1.0, args.timeout),
        user_agent=args.user_agent,
        obey_robots_txt=not args.ignore_robots,
        fetch_retries=args.retries,
        metrics_interval=max(0.0, args.metrics_interval),
    )
    try:
        crawler = Crawler(config)
    except ConfigError as exc:
        logging.error("Invalid configuration: %s", exc)
        return 2

    exporter = None
    if args.prometheus_port:
        exporter = PrometheusExporter(crawler.metrics, port=args.prometheus_port)
        exporter.start()
        logging.info("Prometheus metrics available at http://0.0.0.0:%d/metrics", args.prometheus_port)

    try:
        crawler.run()
    finally:
        if exporter:
            exporter.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
