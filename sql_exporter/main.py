"""Main entry point for the SQL metrics exporter."""
import argparse
import logging
import sys
from functools import partial

from sql_exporter.config import load_config
from sql_exporter.database import open_database, ping
from sql_exporter.errors import ConfigFailure, ConnectionOpenFailure
from sql_exporter.executor import QueryExecutor
from sql_exporter.http_api import ExporterAPI
from sql_exporter.scheduler import Scheduler
from sql_exporter.self_metrics import SelfMetrics
from sql_exporter.store import MetricStore

SHUTDOWN_TIMEOUT_S = 30.0


def setup_logging(log_level: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main(argv=None):
    """Main function."""
    parser = argparse.ArgumentParser(
        description="SQL Metrics Exporter - Expose SQL query results as Prometheus metrics"
    )
    parser.add_argument(
        "--config",
        "-c",
        default="",
        help="Path to configuration YAML file"
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigFailure as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    setup_logging(config.global_.log_level)
    logger = logging.getLogger(__name__)

    logger.info(f"Starting application with {len(config.metrics)} metrics")
    for metric in config.metrics:
        logger.info(f"Metric '{metric.name}': every {metric.interval}s")

    try:
        engine = open_database(config.database)
    except ConnectionOpenFailure as e:
        logger.error(f"Error creating app: {e}")
        return 1

    store = MetricStore()
    self_metrics = SelfMetrics()
    scheduler = Scheduler(config.metrics, QueryExecutor(engine), store, self_metrics)
    api = ExporterAPI(
        store,
        health_check=partial(ping, engine),
        help_texts={m.name: m.help for m in config.metrics},
        self_metrics=self_metrics,
    )

    scheduler.start()
    logger.info(f"Starting server on {config.global_.bind_address}:{config.global_.port}")
    try:
        api.run(host=config.global_.bind_address, port=config.global_.port)
    except Exception as e:
        logger.error(f"HTTP server error: {e}", exc_info=True)
        return 1
    finally:
        logger.info("HTTP server stopped, shutting down")
        if not scheduler.stop(timeout=SHUTDOWN_TIMEOUT_S):
            logger.warning("Some queries were still running at shutdown")
        engine.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(main())
