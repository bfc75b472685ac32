"""Command-line interface for the news aggregator."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from .aggregator import build_aggregator
from .config import AppConfigProvider, parse_app_config, parse_env_config
from .identity import client_ip_from_headers, resolve_identity

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Fetch normalised articles from the configured RSS feeds."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )
    parser.add_argument(
        "--count", type=int, default=5, help="Number of articles to return."
    )
    parser.add_argument(
        "--category", default="all", help="Feed id to read from (default: all)."
    )
    parser.add_argument(
        "--use-ai",
        action="store_true",
        help="Re-rank articles against --criteria using the relevance service.",
    )
    parser.add_argument(
        "--criteria", default="", help="Free-text relevance criteria for ranking."
    )
    parser.add_argument(
        "--user-id", default=None, help="Authenticated user id for rate limiting."
    )
    parser.add_argument(
        "--client-ip", default="", help="Client address for guest rate limiting. Defaults to the "
        "HTTP_X_FORWARDED_FOR, HTTP_X_REAL_IP or REMOTE_ADDR variable."
    )
    parser.add_argument(
        "--list-feeds",
        action="store_true",
        help="Print the enabled feeds as value/label pairs and exit.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        if app_config.env_file:
            os.environ.update(parse_env_config(app_config.env_file))

        configure_logging(
            args.log_level or app_config.logging.level,
            args.log_file or app_config.logging.file,
        )

        provider = AppConfigProvider(app_config)
        aggregator = build_aggregator(app_config, provider)

        if args.list_feeds:
            payload = aggregator.feed_options()
        else:
            client_ip = args.client_ip or client_ip_from_headers(os.environ)
            identity = resolve_identity(
                args.user_id, client_ip, app_config.ranking.identity_salt
            )
            articles = aggregator.fetch_news(
                count=args.count,
                category=args.category,
                use_ai=args.use_ai,
                criteria=args.criteria,
                identity=identity,
            )
            payload = [article.to_dict() for article in articles]
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0
