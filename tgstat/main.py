"""Main entry point for the chat statistics backfill."""
import argparse
import glob
import io
import logging
import sys
from typing import List, Optional

from tgstat.analysis import read_and_analyze_chat_exports
from tgstat.backfill import Metrics
from tgstat.config import Config, load_config
from tgstat.recorder import BackfillRecorder, EmptyHistoryError
from tgstat.self_metrics import BackfillSelfMetrics
from tgstat.uploader import VictoriaMetricsClient


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        fmt = '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
    else:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backfill Telegram chat statistics into VictoriaMetrics"
    )
    parser.add_argument("--config", "-c", help="Path to configuration YAML file")
    parser.add_argument("--chat-exports-glob", help="Glob pattern to find chat exports")
    parser.add_argument("--aliases-file", help="File with sender aliases")
    parser.add_argument("--expressions-file", help="File with expressions to search for")
    parser.add_argument("--resolution-s", type=int, help="Sample resolution in seconds")
    parser.add_argument(
        "--output", "-o",
        help="Write the exposition to this file instead of uploading"
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command line flags on top of the loaded configuration."""
    if args.chat_exports_glob:
        config.input.chat_exports_glob = args.chat_exports_glob
    if args.aliases_file:
        config.input.aliases_file = args.aliases_file
    if args.expressions_file:
        config.input.expressions_file = args.expressions_file
    if args.resolution_s is not None:
        if args.resolution_s <= 0:
            raise ValueError("--resolution-s must be positive")
        config.backfill.resolution_s = args.resolution_s
    return config


def run(argv: Optional[List[str]] = None) -> int:
    """Run the backfill; return the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    files = sorted(glob.glob(config.input.chat_exports_glob))
    logger.info(f"Found {len(files)} chat exports matching {config.input.chat_exports_glob}")

    self_metrics = BackfillSelfMetrics(prefix=config.backfill.metrics_prefix)
    metrics = Metrics(BackfillRecorder(self_metrics))
    resolution = config.backfill.resolution

    try:
        read_and_analyze_chat_exports(
            files,
            metrics,
            aliases_file=config.input.aliases_file,
            expressions_file=config.input.expressions_file,
            prefix=config.backfill.metrics_prefix
        )

        if args.output:
            # Render fully before opening so an empty history leaves the file alone.
            buf = io.BytesIO()
            count = metrics.write(buf, resolution)
            with open(args.output, 'wb') as f:
                f.write(buf.getvalue())
            logger.info(f"Wrote {count} samples to {args.output}")
        else:
            logger.info("Uploading to VictoriaMetrics")
            with VictoriaMetricsClient(config.victoriametrics) as client:
                client.upload(metrics, resolution, config.backfill.metrics_prefix)
    except EmptyHistoryError:
        logger.warning("No messages recorded, nothing to upload")
        return 0
    except Exception as e:
        logger.error(f"Backfill failed: {e}", exc_info=True)
        return 1

    logger.info(f"Backfill summary: {self_metrics.summary()}")
    logger.info("Done")
    return 0


def main():
    """Main function."""
    sys.exit(run())


if __name__ == "__main__":
    main()
